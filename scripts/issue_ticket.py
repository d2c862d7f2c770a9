#!/usr/bin/env python3
"""Script para pedir un ticket a la API y exportarlo como PDF/JPEG"""
import sys
import os
import asyncio

# Agregar directorio raíz al path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from services.ticket_issuance.models.issuance import IssuanceContext
from services.ticket_issuance.services.issuance_client import IssuanceClient
from services.ticket_issuance.services.ticket_display import (
    display_for_issued,
    export_ticket_image,
    export_ticket_pdf,
)
from shared.tickets.exceptions import TicketIssuanceError
from shared.tickets.payload import TicketEvent, TicketHolder


async def run(args) -> int:
    context = IssuanceContext(
        event_id=args.event_id,
        registration_id=args.registration_id,
        holder=TicketHolder(name=args.name, email=args.email),
        event=TicketEvent(title=args.title, location=args.location),
    )
    client = IssuanceClient(base_url=args.api_url or None, auth_token=args.token or os.getenv("USER_TOKEN"))

    try:
        issued = await client.issue_ticket(context)
    except TicketIssuanceError as e:
        print(f"❌ {e}")
        return 1

    if issued.warning:
        print(f"⚠️  {issued.warning}")
    print(f"Token: {issued.token}")

    display = display_for_issued(issued)
    base = os.path.join(args.output_dir, f"ticket-{args.registration_id}")
    with open(f"{base}.pdf", "wb") as f:
        f.write(export_ticket_pdf(display))
    with open(f"{base}.jpg", "wb") as f:
        f.write(export_ticket_image(display))
    print(f"✅ Exportado en {base}.pdf y {base}.jpg")
    return 0


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Emitir y exportar un ticket")
    parser.add_argument("--event-id", required=True, help="ID del evento")
    parser.add_argument("--registration-id", required=True, help="ID del registro")
    parser.add_argument("--name", help="Nombre del titular (para el ticket de respaldo)")
    parser.add_argument("--email", help="Email del titular")
    parser.add_argument("--title", help="Título del evento")
    parser.add_argument("--location", help="Ubicación del evento")
    parser.add_argument("--api-url", help="URL base de la API de tickets")
    parser.add_argument("--token", help="JWT del usuario (default: env USER_TOKEN)")
    parser.add_argument("--output-dir", default=".", help="Directorio de salida")

    sys.exit(asyncio.run(run(parser.parse_args())))
