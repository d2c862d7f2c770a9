"""
Cliente de la autoridad emisora (lado dispositivo) - Async con httpx

Pide el token de un registro y lo deja listo para mostrar. Si la autoridad
no responde sintetiza un ticket local de respaldo: mientras existan datos
locales del titular y del evento, emitir nunca falla.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import asyncio
import logging

import httpx
from pydantic import BaseModel

from app.core.config import settings
from services.ticket_issuance.models.issuance import IssuanceContext, IssuedTicket
from shared.tickets.codec import encode_compact
from shared.tickets.exceptions import TicketIssuanceError
from shared.tickets.parser import parse_token
from shared.tickets.payload import TicketPayload
from shared.utils.circuit_breaker import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

FALLBACK_WARNING = (
    "No se pudo contactar al servidor de tickets. Se generó un ticket de respaldo "
    "que podría no ser verificable en la entrada."
)

def authority_outage(exc: Exception) -> bool:
    """Un 4xx es una respuesta de la autoridad, no una caída"""
    if isinstance(exc, httpx.HTTPStatusError):
        return not exc.response.is_client_error
    return True


# Compartido por todos los clientes del proceso
issuance_breaker = CircuitBreaker(
    "issuance",
    failure_threshold=settings.ISSUANCE_BREAKER_THRESHOLD,
    recovery_timeout=settings.ISSUANCE_BREAKER_RECOVERY_SECONDS,
    is_failure=authority_outage,
)


def _fill_empty(primary: BaseModel, secondary: BaseModel) -> BaseModel:
    """Completar campos vacíos de primary con los de secondary"""
    updates = {}
    for field in type(primary).model_fields:
        current = getattr(primary, field)
        candidate = getattr(secondary, field)
        if current in (None, "") and candidate not in (None, ""):
            updates[field] = candidate
    return primary.model_copy(update=updates) if updates else primary


def enrich_payload(remote: TicketPayload, local: TicketPayload) -> TicketPayload:
    """
    Reparar un payload incompleto de la autoridad con lo que el dispositivo
    ya sabe. Los datos locales solo llenan huecos: un valor de la autoridad
    nunca se reemplaza.
    """
    return remote.model_copy(update={
        "holder": _fill_empty(remote.holder, local.holder),
        "event": _fill_empty(remote.event, local.event),
        "registration_id": remote.registration_id or local.registration_id,
    })


def build_fallback_payload(context: IssuanceContext, now: Optional[datetime] = None) -> TicketPayload:
    """Ticket sintetizado sin la autoridad, marcado como de menor confianza"""
    now = now or datetime.now(timezone.utc)
    return context.local_payload().model_copy(update={
        "issued_at": now,
        "expires_at": now + timedelta(days=settings.FALLBACK_TOKEN_TTL_DAYS),
        "is_fallback": True,
    })


class IssuanceClient:
    """Cliente de POST /issue con timeout, circuit breaker y fallback local"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.ISSUANCE_API_URL).rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout if timeout is not None else settings.ISSUANCE_TIMEOUT_SECONDS
        self.breaker = breaker or issuance_breaker
        self.transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _request_token(self, event_id: int, registration_id: int) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            # wait_for acota la operación completa, no solo cada fase de httpx
            response = await asyncio.wait_for(
                client.post(
                    f"{self.base_url}/issue",
                    json={"event_id": event_id, "registration_id": registration_id},
                    headers=self._headers(),
                ),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict) or not isinstance(data.get("token"), str) or not data["token"]:
            raise ValueError("Respuesta de emisión sin token")
        return data

    async def issue_ticket(self, context: IssuanceContext) -> IssuedTicket:
        """
        Obtener el ticket de un registro.

        Raises:
            TicketIssuanceError: IDs no numéricos, o la autoridad falló y no
                hay datos locales para un ticket de respaldo
        """
        try:
            event_id = int(context.event_id)
            registration_id = int(context.registration_id)
        except ValueError:
            raise TicketIssuanceError("El evento y el registro deben tener IDs numéricos")

        try:
            data = await self.breaker.call(self._request_token, event_id, registration_id)
        except CircuitOpenError:
            return self._fallback(context, "autoridad emisora marcada como caída")
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return self._fallback(context, f"timeout tras {self.timeout}s")
        except httpx.HTTPStatusError as e:
            return self._fallback(context, f"HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            return self._fallback(context, f"error de conexión: {e}")
        except ValueError as e:
            # JSON inválido o respuesta sin token
            return self._fallback(context, str(e))

        parsed = parse_token(data["token"])
        if not parsed.recognized:
            return self._fallback(context, "token de la autoridad ilegible")

        payload = enrich_payload(parsed.payload, context.local_payload())
        logger.info(
            f"Ticket emitido por la autoridad para registro {registration_id} "
            f"(dialecto {parsed.dialect.value})"
        )
        return IssuedTicket(
            token=encode_compact(payload),
            payload=payload,
            is_fallback=payload.is_fallback,
            is_checked_in=bool(data.get("is_checked_in") or data.get("isCheckedIn")),
        )

    def _fallback(self, context: IssuanceContext, reason: str) -> IssuedTicket:
        if not context.has_local_data:
            logger.error(f"Emisión fallida para registro {context.registration_id} sin datos locales: {reason}")
            raise TicketIssuanceError(f"No se pudo emitir el ticket: {reason}")

        payload = build_fallback_payload(context)
        circuit = "; circuito abierto" if self.breaker.is_open else ""
        logger.warning(
            f"Autoridad emisora no disponible ({reason}{circuit}); "
            f"ticket de respaldo para registro {context.registration_id}"
        )
        return IssuedTicket(
            token=encode_compact(payload),
            payload=payload,
            is_fallback=True,
            is_checked_in=False,
            warning=FALLBACK_WARNING,
        )
