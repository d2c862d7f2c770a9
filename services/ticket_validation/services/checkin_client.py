"""Cliente del backend de check-in (lado dispositivo) - Async con httpx"""
from typing import Optional
import asyncio
import logging

import httpx
from pydantic import ValidationError

from app.core.config import settings
from services.ticket_validation.models.ticket import PhotoResponse, TicketValidationResponse
from shared.tickets.exceptions import CheckInRejectedError, CheckInUnavailableError

logger = logging.getLogger(__name__)


class CheckInClient:
    """
    Llamadas del scanner al backend.

    Toda llamada termina en un resultado o en una de dos excepciones que el
    orquestador distingue: CheckInUnavailableError (red, timeout, 5xx,
    respuesta ilegible) y CheckInRejectedError (4xx).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        photo_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.VALIDATION_API_URL).rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout if timeout is not None else settings.VALIDATION_TIMEOUT_SECONDS
        self.photo_timeout = photo_timeout if photo_timeout is not None else settings.PHOTO_LOOKUP_TIMEOUT_SECONDS
        self.transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _send(self, method: str, path: str, timeout: float, **kwargs) -> dict:
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await asyncio.wait_for(
                    client.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs),
                    timeout=timeout,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise CheckInUnavailableError(f"Timeout tras {timeout}s") from e
        except httpx.RequestError as e:
            raise CheckInUnavailableError(f"Error de conexión: {e}") from e

        if response.status_code >= 500:
            raise CheckInUnavailableError(f"Servidor respondió {response.status_code}")
        if response.status_code >= 400:
            raise CheckInRejectedError(self._error_detail(response), response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise CheckInUnavailableError("Respuesta ilegible del servidor") from e
        if not isinstance(data, dict):
            raise CheckInUnavailableError("Respuesta ilegible del servidor")
        return data

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(data, dict):
            return str(data.get("detail") or data.get("error_message") or data.get("error") or f"HTTP {response.status_code}")
        return f"HTTP {response.status_code}"

    async def attempt_check_in(self, token: str, event_id: Optional[int] = None) -> TicketValidationResponse:
        """Enviar el token crudo para reconciliación"""
        body = {"token": token}
        if event_id is not None:
            body["event_id"] = event_id
        data = await self._send("POST", "/validate", self.timeout, json=body)
        try:
            return TicketValidationResponse(**data)
        except ValidationError as e:
            raise CheckInUnavailableError("Respuesta de validación inválida") from e

    async def fetch_photo_url(self, registration_id: int) -> Optional[str]:
        """Foto autoritativa del registro; None si no tiene"""
        data = await self._send("GET", f"/registrations/{registration_id}/photo", self.photo_timeout)
        try:
            return PhotoResponse(**data).photo_url
        except ValidationError as e:
            raise CheckInUnavailableError("Respuesta de foto inválida") from e
