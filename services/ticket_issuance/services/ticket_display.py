"""Superficie de despliegue del ticket: QR + resumen legible + exportación"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from app.core.config import settings
from services.ticket_issuance.models.issuance import IssuedTicket
from shared.tickets.parser import parse_token
from shared.tickets.payload import TicketPayload, display_value
from shared.utils.qr_generator import generate_qr_png
from shared.utils.ticket_renderer import render_ticket_jpeg, render_ticket_pdf, render_tickets_pdf

FALLBACK_NOTICE = (
    "Ticket de respaldo generado sin conexión. Muéstralo junto a tu credencial: "
    "en la entrada podría no poder verificarse."
)
CHECKED_IN_BADGE = "Ya registrado en la entrada"
DEFAULT_TITLE = "Ticket de evento"


@dataclass(frozen=True)
class TicketDisplay:
    token: str
    qr_png: bytes
    title: str
    rows: List[Tuple[str, str]] = field(default_factory=list)
    notice: Optional[str] = None
    badge: Optional[str] = None
    reference: Optional[str] = None


def summary_rows(payload: TicketPayload) -> List[Tuple[str, str]]:
    """Filas (etiqueta, valor) en orden fijo, con placeholder si falta el dato"""
    holder = payload.holder
    event = payload.event
    return [
        ("Nombre", display_value(holder.name)),
        ("Email", display_value(holder.email)),
        ("Matrícula", display_value(holder.roll_number)),
        ("Departamento", display_value(holder.department)),
        ("Año", display_value(holder.year)),
        ("Curso", display_value(holder.class_or_semester)),
        ("Evento", display_value(event.title)),
        ("Ubicación", display_value(event.location)),
        ("Fecha", display_value(event.start_time)),
    ]


def build_ticket_display(
    token: str,
    payload: Optional[TicketPayload] = None,
    is_checked_in: bool = False,
) -> TicketDisplay:
    """Armar el despliegue de un token; si no se entrega payload se parsea"""
    if payload is None:
        payload = parse_token(token).payload or TicketPayload()

    return TicketDisplay(
        token=token,
        qr_png=generate_qr_png(token),
        title=payload.event.title or DEFAULT_TITLE,
        rows=summary_rows(payload),
        notice=FALLBACK_NOTICE if payload.is_fallback else None,
        badge=CHECKED_IN_BADGE if is_checked_in else None,
        reference=payload.registration_id,
    )


def display_for_issued(issued: IssuedTicket) -> TicketDisplay:
    return build_ticket_display(issued.token, issued.payload, issued.is_checked_in)


def export_ticket_image(display: TicketDisplay) -> bytes:
    """Exportar como imagen JPEG"""
    return render_ticket_jpeg(display, settings.TICKET_BRAND_NAME)


def export_ticket_pdf(display: TicketDisplay) -> bytes:
    """Exportar como documento PDF de una página"""
    return render_ticket_pdf(display, settings.TICKET_BRAND_NAME)


def export_tickets_pdf(displays: Sequence[TicketDisplay]) -> bytes:
    """Exportar varios tickets en un PDF, uno por página"""
    return render_tickets_pdf(displays, settings.TICKET_BRAND_NAME)
