"""
Ingesta de escaneos: imagen estática o texto manual -> texto crudo

El decode óptico usa pyzbar (libzbar), importado al primer uso. Se puede
inyectar otro decoder.
"""
from io import BytesIO
from pathlib import Path
from typing import Callable, List, Optional, Union
import logging

from PIL import Image, UnidentifiedImageError

from shared.tickets.exceptions import EmptyScanError, NoCodeFoundError

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path, Image.Image]
Decoder = Callable[[Image.Image], List[str]]


def zbar_decoder(img: Image.Image) -> List[str]:
    """Textos de todos los QR encontrados en la imagen"""
    from pyzbar.pyzbar import ZBarSymbol, decode

    results = []
    for symbol in decode(img, symbols=[ZBarSymbol.QRCODE]):
        try:
            results.append(symbol.data.decode("utf-8"))
        except UnicodeDecodeError:
            results.append(symbol.data.decode("latin-1"))
    return results


def _open_image(source: ImageSource) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(BytesIO(source))
        else:
            img = Image.open(source)
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise NoCodeFoundError(f"No se pudo abrir la imagen: {e}") from e
    return img


def ingest_image(source: ImageSource, decoder: Optional[Decoder] = None) -> str:
    """
    Decodificar el primer QR de una imagen.

    Raises:
        NoCodeFoundError: imagen ilegible o sin códigos
    """
    img = _open_image(source).convert("L")  # Escala de grises
    decoded = [text for text in (decoder or zbar_decoder)(img) if text and text.strip()]
    if not decoded:
        raise NoCodeFoundError("No se encontró ningún código QR en la imagen")
    if len(decoded) > 1:
        logger.info(f"La imagen contiene {len(decoded)} códigos, se usa el primero")
    return decoded[0].strip()


def ingest_manual(text: Optional[str]) -> str:
    """
    Texto ingresado a mano por el operador.

    Raises:
        EmptyScanError: entrada vacía
    """
    if text is None or not text.strip():
        raise EmptyScanError("Ingresa el código del ticket")
    return text.strip()
