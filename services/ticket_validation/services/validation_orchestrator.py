"""
Orquestador de validación (lado scanner)

Cada escaneo tiene su propia máquina de estados:

    IDLE -> SCANNED -> LOCALLY_DISPLAYED -> SERVER_RECONCILING ->
        CONFIRMED | ALREADY_ADMITTED | SERVER_REJECTED | SERVER_UNREACHABLE

más los terminales DISPLAY_ONLY (token de respaldo o sin IDs) y
UNRECOGNIZED. Cada transición se publica como un ScanView inmutable; los
datos locales siempre se publican antes que cualquier estado del servidor.

ScannerDevice mantiene un solo escaneo vigente: uno nuevo cancela al
anterior y las vistas con un scan_id viejo se descartan.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
import asyncio
import logging

from services.ticket_validation.models.ticket import TicketValidationResponse
from services.ticket_validation.services.checkin_client import CheckInClient
from services.ticket_validation.services.scan_ingestion import ImageSource, ingest_image, ingest_manual
from shared.tickets.exceptions import CheckInRejectedError, CheckInUnavailableError
from shared.tickets.parser import ParseResult, TokenDialect, parse_token
from shared.tickets.payload import TicketPayload

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNED = "scanned"
    LOCALLY_DISPLAYED = "locally_displayed"
    SERVER_RECONCILING = "server_reconciling"
    CONFIRMED = "confirmed"
    ALREADY_ADMITTED = "already_admitted"
    SERVER_REJECTED = "server_rejected"
    SERVER_UNREACHABLE = "server_unreachable"
    DISPLAY_ONLY = "display_only"
    UNRECOGNIZED = "unrecognized"


TERMINAL_STATES = frozenset({
    ScanState.CONFIRMED,
    ScanState.ALREADY_ADMITTED,
    ScanState.SERVER_REJECTED,
    ScanState.SERVER_UNREACHABLE,
    ScanState.DISPLAY_ONLY,
    ScanState.UNRECOGNIZED,
})

UNRECOGNIZED_MESSAGE = "Código escaneado no reconocido como ticket"
DISPLAY_ONLY_MESSAGE = "Ticket sin verificación en línea: verificar identidad manualmente"
UNREACHABLE_MESSAGE = "No se pudo validar con el servidor. Decide manualmente o reintenta"


@dataclass(frozen=True)
class ScanView:
    """Lo que el operador ve en un momento dado"""
    scan_id: int
    state: ScanState = ScanState.IDLE
    raw: str = ""
    payload: Optional[TicketPayload] = None
    dialect: Optional[TokenDialect] = None
    photo_url: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    message: Optional[str] = None
    server_response: Optional[TicketValidationResponse] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def can_retry(self) -> bool:
        return self.state == ScanState.SERVER_UNREACHABLE


class ValidationOrchestrator:
    """Máquina de estados de un único escaneo. No se reutiliza"""

    def __init__(
        self,
        scan_id: int,
        raw: str,
        client: CheckInClient,
        publish: Callable[[ScanView], None],
        event_id: Optional[int] = None,
    ):
        self.client = client
        self.event_id = event_id
        self._publish = publish
        self._cancelled = False
        self._parsed: Optional[ParseResult] = None
        self._photo_task: Optional[asyncio.Task] = None
        self.view = ScanView(scan_id=scan_id, raw=raw)

    @property
    def scan_id(self) -> int:
        return self.view.scan_id

    @property
    def photo_lookup(self) -> Optional[asyncio.Task]:
        return self._photo_task

    def _emit(self, state: ScanState, **changes) -> ScanView:
        self.view = replace(self.view, state=state, **changes)
        if not self._cancelled:
            self._publish(self.view)
        return self.view

    async def run(self) -> ScanView:
        self._emit(ScanState.SCANNED)

        self._parsed = parse_token(self.view.raw)
        if not self._parsed.recognized:
            logger.info(f"Escaneo {self.scan_id}: código no reconocido")
            return self._emit(ScanState.UNRECOGNIZED, message=UNRECOGNIZED_MESSAGE)

        payload = self._parsed.payload
        self._emit(
            ScanState.LOCALLY_DISPLAYED,
            payload=payload,
            dialect=self._parsed.dialect,
            photo_url=payload.holder.profile_photo_url,
        )

        if payload.registration_id:
            self._photo_task = asyncio.create_task(self._lookup_photo(payload.registration_id))

        if not self._parsed.server_verifiable:
            return self._emit(ScanState.DISPLAY_ONLY, message=DISPLAY_ONLY_MESSAGE)

        return await self._reconcile()

    async def retry(self) -> ScanView:
        """Reintentar la reconciliación tras SERVER_UNREACHABLE"""
        if not self.view.can_retry:
            raise RuntimeError(f"No se puede reintentar desde el estado {self.view.state.value}")
        return await self._reconcile()

    async def _reconcile(self) -> ScanView:
        self._emit(ScanState.SERVER_RECONCILING, message=None)
        try:
            response = await self.client.attempt_check_in(self.view.raw.strip(), self.event_id)
        except CheckInUnavailableError as e:
            logger.warning(f"Escaneo {self.scan_id}: servidor no disponible ({e})")
            return self._emit(ScanState.SERVER_UNREACHABLE, message=UNREACHABLE_MESSAGE)
        except CheckInRejectedError as e:
            logger.info(f"Escaneo {self.scan_id}: rechazado por el servidor ({e})")
            return self._emit(ScanState.SERVER_REJECTED, message=str(e))

        if response.already_checked_in:
            return self._emit(
                ScanState.ALREADY_ADMITTED,
                checked_in_at=response.checked_in_at,
                message="Ticket ya utilizado",
                server_response=response,
            )
        if response.valid and response.success:
            return self._emit(
                ScanState.CONFIRMED,
                checked_in_at=response.checked_in_at,
                message="Check-in exitoso",
                server_response=response,
            )
        return self._emit(
            ScanState.SERVER_REJECTED,
            message=response.error_message or "Ticket inválido",
            server_response=response,
        )

    async def _lookup_photo(self, registration_id: str):
        """Consulta secundaria de la foto; cualquier fallo se ignora"""
        try:
            photo_url = await self.client.fetch_photo_url(int(registration_id))
        except Exception as e:
            logger.debug(f"Escaneo {self.scan_id}: sin foto autoritativa ({e})")
            return
        if photo_url and not self._cancelled:
            self.view = replace(self.view, photo_url=photo_url)
            self._publish(self.view)

    def cancel(self):
        """Abandonar este escaneo: no se publica nada más"""
        self._cancelled = True
        if self._photo_task and not self._photo_task.done():
            self._photo_task.cancel()


class ScannerDevice:
    """
    Un scanner físico. Las vistas de cada escaneo se entregan en orden por
    la cola `views` y, si se configuró, al listener.
    """

    def __init__(
        self,
        client: CheckInClient,
        event_id: Optional[int] = None,
        listener: Optional[Callable[[ScanView], None]] = None,
    ):
        self.client = client
        self.event_id = event_id
        self.listener = listener
        self.views: "asyncio.Queue[ScanView]" = asyncio.Queue()
        self.current_view: Optional[ScanView] = None
        self._scan_id = 0
        self._orchestrator: Optional[ValidationOrchestrator] = None
        self._task: Optional[asyncio.Task] = None

    def _accept(self, view: ScanView):
        if view.scan_id != self._scan_id:
            logger.debug(f"Vista descartada del escaneo {view.scan_id} (vigente: {self._scan_id})")
            return
        self.current_view = view
        self.views.put_nowait(view)
        if self.listener:
            self.listener(view)

    def _supersede(self):
        if self._orchestrator:
            self._orchestrator.cancel()
        if self._task and not self._task.done():
            self._task.cancel()

    def submit(self, raw: str) -> asyncio.Task:
        """Iniciar un escaneo nuevo, abandonando el anterior"""
        self._supersede()
        self._scan_id += 1
        self._orchestrator = ValidationOrchestrator(
            self._scan_id, raw, self.client, self._accept, self.event_id
        )
        self._task = asyncio.create_task(self._orchestrator.run())
        return self._task

    async def _await(self, task: asyncio.Task, orchestrator: ValidationOrchestrator) -> ScanView:
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._task is not task:
                # Reemplazado por un escaneo más nuevo
                return orchestrator.view
            raise

    async def scan(self, raw: str) -> ScanView:
        """Procesar un texto escaneado hasta un estado terminal"""
        task = self.submit(raw)
        return await self._await(task, self._orchestrator)

    async def scan_image(self, source: ImageSource) -> ScanView:
        """Raises NoCodeFoundError si la imagen no tiene un QR legible"""
        return await self.scan(ingest_image(source))

    async def scan_text(self, text: str) -> ScanView:
        """Raises EmptyScanError si el texto está vacío"""
        return await self.scan(ingest_manual(text))

    async def retry(self) -> ScanView:
        """Reintentar el escaneo vigente si quedó sin resolver"""
        orchestrator = self._orchestrator
        if orchestrator is None or not orchestrator.view.can_retry:
            raise RuntimeError("No hay una validación sin resolver para reintentar")
        self._task = asyncio.create_task(orchestrator.retry())
        return await self._await(self._task, orchestrator)

    async def settle(self):
        """Esperar la consulta de foto del escaneo vigente, si sigue en curso"""
        orchestrator = self._orchestrator
        if orchestrator and orchestrator.photo_lookup:
            await asyncio.gather(orchestrator.photo_lookup, return_exceptions=True)

    def close(self):
        self._supersede()
