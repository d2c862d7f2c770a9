"""
Render de tickets para descarga: documento PDF (ReportLab) e imagen JPEG (Pillow)

Ambos formatos reciben un TicketDisplay ya armado; aquí solo se dibuja.
"""
from io import BytesIO
from typing import List, Optional, Sequence
import logging

from PIL import Image, ImageDraw, ImageFont
from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

# Colores
PRIMARY_COLOR = "#2563eb"
SECONDARY_COLOR = "#1f2937"
TEXT_COLOR = "#6b7280"
BG_COLOR = "#f8fafc"
BORDER_COLOR = "#e5e7eb"
WARNING_COLOR = "#b45309"
SUCCESS_COLOR = "#15803d"


def _wrap_text(c: canvas.Canvas, text: str, font: str, size: int, max_width: float) -> List[str]:
    """Dividir un texto en líneas que caben en max_width"""
    words = text.split()
    lines = []
    current_line = words[0] if words else ""
    for word in words[1:]:
        test_line = current_line + " " + word
        if c.stringWidth(test_line, font, size) < max_width:
            current_line = test_line
        else:
            lines.append(current_line)
            current_line = word
    lines.append(current_line)
    return lines


def _draw_ticket_page(c: canvas.Canvas, display, brand: str, page_label: Optional[str] = None):
    width, height = A4

    # === HEADER ===
    c.setFillColor(HexColor(BG_COLOR))
    c.rect(0, height - 65*mm, width, 65*mm, fill=1, stroke=0)

    c.setFillColor(HexColor(PRIMARY_COLOR))
    c.setFont("Helvetica-Bold", 24)
    c.drawCentredString(width/2, height - 22*mm, brand)

    if page_label:
        c.setFillColor(HexColor(TEXT_COLOR))
        c.setFont("Helvetica", 10)
        c.drawCentredString(width/2, height - 32*mm, page_label)

    c.setStrokeColor(HexColor(BORDER_COLOR))
    c.setLineWidth(1.5)
    c.line(30*mm, height - 42*mm, width - 30*mm, height - 42*mm)

    # === TÍTULO DEL EVENTO ===
    y_pos = height - 55*mm
    c.setFillColor(HexColor(SECONDARY_COLOR))
    c.setFont("Helvetica-Bold", 20)
    lines = _wrap_text(c, display.title, "Helvetica-Bold", 20, width - 60*mm)
    for i, line in enumerate(lines):
        c.drawCentredString(width/2, y_pos - i*7*mm, line)
    y_pos -= len(lines) * 7*mm + 8*mm

    # === QR CODE ===
    qr_size = 55*mm
    qr_x = (width - qr_size) / 2
    qr_y = y_pos - qr_size - 5*mm

    c.setStrokeColor(HexColor("#d1d5db"))
    c.setLineWidth(1)
    c.roundRect(qr_x - 3*mm, qr_y - 3*mm, qr_size + 6*mm, qr_size + 6*mm, 3*mm, fill=0, stroke=1)
    c.drawImage(ImageReader(BytesIO(display.qr_png)), qr_x, qr_y, width=qr_size, height=qr_size)

    y_pos = qr_y - 12*mm
    c.setFillColor(HexColor(TEXT_COLOR))
    c.setFont("Helvetica", 10)
    c.drawCentredString(width/2, y_pos, "Escanea este código en la entrada")
    y_pos -= 8*mm

    # === AVISOS ===
    if display.badge:
        c.setFillColor(HexColor(SUCCESS_COLOR))
        c.setFont("Helvetica-Bold", 11)
        c.drawCentredString(width/2, y_pos, display.badge)
        y_pos -= 7*mm
    if display.notice:
        c.setFillColor(HexColor(WARNING_COLOR))
        c.setFont("Helvetica", 9)
        for line in _wrap_text(c, display.notice, "Helvetica", 9, width - 60*mm):
            c.drawCentredString(width/2, y_pos, line)
            y_pos -= 5*mm
        y_pos -= 2*mm

    # === DETALLES ===
    left_x = 35*mm
    value_x = 75*mm
    for label, value in display.rows:
        c.setFillColor(HexColor(TEXT_COLOR))
        c.setFont("Helvetica", 9)
        c.drawString(left_x, y_pos, label.upper())
        c.setFillColor(HexColor(SECONDARY_COLOR))
        c.setFont("Helvetica-Bold", 10)
        value_lines = _wrap_text(c, value, "Helvetica-Bold", 10, width - value_x - 30*mm)
        for i, line in enumerate(value_lines):
            c.drawString(value_x, y_pos - i*5*mm, line)
        y_pos -= max(len(value_lines), 1) * 5*mm + 2*mm

    # === FOOTER ===
    c.setFillColor(HexColor(TEXT_COLOR))
    c.setFont("Helvetica", 8)
    if display.reference:
        c.drawCentredString(width/2, 12*mm, f"ID: {display.reference}")
    c.setFont("Helvetica", 7)
    c.drawCentredString(width/2, 6*mm, f"{brand} - Tickets de eventos del campus")


def render_ticket_pdf(display, brand: str) -> bytes:
    """PDF de una página con el ticket"""
    return render_tickets_pdf([display], brand)


def render_tickets_pdf(displays: Sequence, brand: str) -> bytes:
    """PDF con múltiples tickets (uno por página)"""
    if not displays:
        raise ValueError("Se requiere al menos un ticket")

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"{brand} - Tickets")

    total = len(displays)
    for idx, display in enumerate(displays):
        if idx > 0:
            c.showPage()  # Nueva página para cada ticket después del primero
        page_label = f"Entrada {idx + 1} de {total}" if total > 1 else None
        _draw_ticket_page(c, display, brand, page_label)

    c.save()
    logger.info(f"PDF generado con {total} ticket(s)")
    return buffer.getvalue()


def render_ticket_jpeg(display, brand: str, quality: int = 90) -> bytes:
    """Imagen JPEG con QR arriba y el resumen legible debajo"""
    qr_img = Image.open(BytesIO(display.qr_png)).convert("RGB")
    qr_img = qr_img.resize((360, 360), Image.NEAREST)

    font = ImageFont.load_default()
    line_height = 18
    width = 480
    lines = [display.title, ""]
    if display.badge:
        lines.append(display.badge)
    if display.notice:
        lines.append(display.notice)
    lines.extend(f"{label}: {value}" for label, value in display.rows)
    height = 40 + qr_img.height + 20 + line_height * len(lines) + 30

    canvas_img = Image.new("RGB", (width, height), "white")
    draw = ImageDraw.Draw(canvas_img)
    draw.text((20, 12), brand, fill=PRIMARY_COLOR, font=font)
    canvas_img.paste(qr_img, ((width - qr_img.width) // 2, 40))

    y_pos = 40 + qr_img.height + 20
    for line in lines:
        color = WARNING_COLOR if line == display.notice else SECONDARY_COLOR
        draw.text((20, y_pos), line, fill=color, font=font)
        y_pos += line_height

    buffer = BytesIO()
    canvas_img.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
