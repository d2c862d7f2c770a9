#!/usr/bin/env python3
"""Script para validar un ticket desde consola (imagen QR o texto)"""
import sys
import os
import asyncio

# Agregar directorio raíz al path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

# Cargar variables de entorno antes de leer la configuración
load_dotenv()

from services.ticket_validation.services.checkin_client import CheckInClient
from services.ticket_validation.services.validation_orchestrator import ScannerDevice, ScanState, ScanView
from shared.tickets.exceptions import EmptyScanError, NoCodeFoundError
from shared.tickets.payload import display_value


def print_view(view: ScanView):
    print(f"[{view.scan_id}] {view.state.value}")
    if view.payload and view.state == ScanState.LOCALLY_DISPLAYED:
        holder = view.payload.holder
        event = view.payload.event
        print(f"    Nombre:   {display_value(holder.name)}")
        print(f"    Email:    {display_value(holder.email)}")
        print(f"    Evento:   {display_value(event.title)}")
        print(f"    Ubicación:{display_value(event.location)}")
        print(f"    Fecha:    {display_value(event.start_time)}")
        print(f"    Registro: {display_value(view.payload.registration_id)}")
    if view.photo_url:
        print(f"    Foto:     {view.photo_url}")
    if view.checked_in_at:
        print(f"    Admitido: {display_value(view.checked_in_at)}")
    if view.message:
        print(f"    {view.message}")


async def run(args) -> int:
    client = CheckInClient(
        base_url=args.api_url or None,
        auth_token=args.token or os.getenv("SCANNER_TOKEN"),
    )
    device = ScannerDevice(client, event_id=args.event_id, listener=print_view)
    try:
        if args.image:
            view = await device.scan_image(args.image)
        else:
            view = await device.scan_text(args.text)
    except (NoCodeFoundError, EmptyScanError) as e:
        print(f"❌ {e}")
        return 2

    await device.settle()

    return 0 if view.state in (ScanState.CONFIRMED, ScanState.ALREADY_ADMITTED, ScanState.DISPLAY_ONLY) else 1


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Validar un ticket de evento")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", help="Ruta a una imagen con el QR")
    source.add_argument("--text", help="Texto del ticket ingresado a mano")
    parser.add_argument("--event-id", type=int, help="Evento seleccionado en el scanner")
    parser.add_argument("--api-url", help="URL base de la API de tickets")
    parser.add_argument("--token", help="JWT del operador (default: env SCANNER_TOKEN)")

    sys.exit(asyncio.run(run(parser.parse_args())))
