# tests/test_ticket_display.py

from io import BytesIO

import pytest
from PIL import Image

from services.ticket_issuance.models.issuance import IssuedTicket
from services.ticket_issuance.services.ticket_display import (
    CHECKED_IN_BADGE,
    DEFAULT_TITLE,
    FALLBACK_NOTICE,
    build_ticket_display,
    display_for_issued,
    export_ticket_image,
    export_ticket_pdf,
    export_tickets_pdf,
)
from shared.tickets.codec import encode_compact
from shared.tickets.payload import UNKNOWN_VALUE, TicketPayload


class TestTicketDisplay:

    def test_rows_in_fixed_order_with_placeholders(self, asha_payload):
        display = build_ticket_display(encode_compact(asha_payload), asha_payload)

        rows = dict(display.rows)
        assert [label for label, _ in display.rows] == [
            "Nombre", "Email", "Matrícula", "Departamento", "Año", "Curso", "Evento", "Ubicación", "Fecha",
        ]
        assert rows["Nombre"] == "Asha Rao"
        assert rows["Matrícula"] == UNKNOWN_VALUE
        assert rows["Fecha"] == "01/03/2025 18:00"
        assert display.title == "Hack Night"
        assert display.reference == "42"
        assert display.notice is None
        assert display.badge is None

    def test_payload_is_parsed_from_the_token(self, asha_payload):
        display = build_ticket_display(encode_compact(asha_payload))

        assert dict(display.rows)["Ubicación"] == "Lab 3"

    def test_unparseable_token_still_renders(self):
        display = build_ticket_display("opaque-token")

        assert display.title == DEFAULT_TITLE
        assert all(value == UNKNOWN_VALUE for _, value in display.rows)
        assert display.qr_png.startswith(b"\x89PNG")

    def test_fallback_notice(self, asha_payload):
        fallback = asha_payload.model_copy(update={"is_fallback": True})

        display = build_ticket_display(encode_compact(fallback), fallback)

        assert display.notice == FALLBACK_NOTICE

    def test_checked_in_badge(self, asha_payload):
        issued = IssuedTicket(
            token=encode_compact(asha_payload),
            payload=asha_payload,
            is_fallback=False,
            is_checked_in=True,
        )

        assert display_for_issued(issued).badge == CHECKED_IN_BADGE


class TestExport:

    def test_pdf(self, asha_payload):
        pdf = export_ticket_pdf(build_ticket_display(encode_compact(asha_payload), asha_payload))

        assert pdf.startswith(b"%PDF")

    def test_jpeg(self, asha_payload):
        jpeg = export_ticket_image(build_ticket_display(encode_compact(asha_payload), asha_payload))

        assert jpeg[:2] == b"\xff\xd8"
        assert Image.open(BytesIO(jpeg)).format == "JPEG"

    def test_bulk_pdf_has_one_page_per_ticket(self, asha_payload):
        displays = [
            build_ticket_display(encode_compact(asha_payload), asha_payload),
            build_ticket_display("N:Ravi Kumar|EID:7|RID:43"),
        ]

        pdf = export_tickets_pdf(displays)

        assert pdf.startswith(b"%PDF")
        assert b"/Count 2" in pdf

    def test_bulk_pdf_requires_tickets(self):
        with pytest.raises(ValueError):
            export_tickets_pdf([])

    def test_empty_payload_renders(self):
        display = build_ticket_display("RID:1", TicketPayload())

        assert export_ticket_pdf(display).startswith(b"%PDF")
