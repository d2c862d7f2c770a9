from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from io import BytesIO
from pydantic import BaseModel
from typing import List
import logging

from services.ticket_issuance.services.ticket_display import (
    build_ticket_display,
    export_ticket_image,
    export_ticket_pdf,
    export_tickets_pdf,
)
from shared.tickets.parser import parse_token
from shared.utils.qr_generator import generate_qr_png

logger = logging.getLogger(__name__)

app = FastAPI(title="PDF/QR Service")


class TicketDocumentRequest(BaseModel):
    token: str
    is_checked_in: bool = False


class BulkTicketsRequest(BaseModel):
    """Request para generar PDF con múltiples tickets"""
    tickets: List[TicketDocumentRequest]


def _display(ticket: TicketDocumentRequest):
    if not ticket.token.strip():
        raise HTTPException(status_code=400, detail="El token no puede estar vacío")
    return build_ticket_display(ticket.token.strip(), is_checked_in=ticket.is_checked_in)


def _filename(ticket: TicketDocumentRequest, extension: str) -> str:
    payload = parse_token(ticket.token).payload
    reference = payload.registration_id if payload and payload.registration_id else "campuspass"
    return f"ticket-{reference}.{extension}"


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/qr/{text}")
def qr_png(text: str):
    return StreamingResponse(BytesIO(generate_qr_png(text)), media_type="image/png")


@app.post("/tickets/pdf")
async def generate_ticket_pdf_endpoint(ticket: TicketDocumentRequest):
    """
    Genera el PDF de un ticket a partir de su token

    El resumen legible se arma parseando el token, en cualquier dialecto.
    """
    display = _display(ticket)
    try:
        pdf = export_ticket_pdf(display)
    except Exception as e:
        logger.error(f"Error generando PDF: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generando PDF: {str(e)}")

    return StreamingResponse(
        BytesIO(pdf),
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={_filename(ticket, 'pdf')}"}
    )


@app.post("/tickets/pdf/bulk")
async def generate_bulk_tickets_pdf_endpoint(request: BulkTicketsRequest):
    """Genera un PDF con múltiples tickets (uno por página)"""
    if not request.tickets:
        raise HTTPException(status_code=400, detail="Se requiere al menos un ticket")

    displays = [_display(ticket) for ticket in request.tickets]
    try:
        pdf = export_tickets_pdf(displays)
    except Exception as e:
        logger.error(f"Error generando PDF múltiple: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generando PDF: {str(e)}")

    return StreamingResponse(
        BytesIO(pdf),
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment; filename=tickets.pdf"}
    )


@app.post("/tickets/image")
async def generate_ticket_image_endpoint(ticket: TicketDocumentRequest):
    """Genera la imagen JPEG de un ticket"""
    display = _display(ticket)
    try:
        image = export_ticket_image(display)
    except Exception as e:
        logger.error(f"Error generando imagen: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error generando imagen: {str(e)}")

    return StreamingResponse(
        BytesIO(image),
        media_type="image/jpeg",
        headers={"Content-Disposition": f"attachment; filename={_filename(ticket, 'jpg')}"}
    )
