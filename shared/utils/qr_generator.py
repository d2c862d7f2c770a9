"""Generación de imágenes QR para tickets"""
import io
import logging

import qrcode
from PIL import Image
from qrcode.image.pil import PilImage

logger = logging.getLogger(__name__)


def generate_qr_image(data: str, box_size: int = 10, border: int = 4) -> Image.Image:
    """Generar la imagen QR (Pillow, RGB) de un token"""
    if not data:
        raise ValueError("No se puede generar un QR sin datos")

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(image_factory=PilImage, fill_color="black", back_color="white")
    return img.convert("RGB")  # PilImage delega en la imagen Pillow interna


def generate_qr_png(data: str) -> bytes:
    """Imagen QR como bytes PNG"""
    img_buffer = io.BytesIO()
    generate_qr_image(data).save(img_buffer, format="PNG")
    png = img_buffer.getvalue()
    logger.debug(f"QR generado ({len(data)} caracteres, {len(png)} bytes)")
    return png
