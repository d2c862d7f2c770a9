"""
Parser polimórfico de tokens escaneados

Normaliza cualquier dialecto conocido a un TicketPayload. Los dialectos se
prueban como una lista ordenada de estrategias; cada una retorna un payload
o None. Si ninguna reconoce el texto el resultado es "no reconocido", nunca
una excepción.
"""
from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlparse, parse_qs, unquote

from shared.tickets.codec import (
    COMPACT_RULES,
    COMPACT_TEXT_FIELDS,
    DELIMITER,
    SegmentReader,
    decode_compact,
    decode_legacy,
    parse_iso_datetime,
)
from shared.tickets.payload import TicketPayload


class TokenDialect(str, Enum):
    COMPACT = "compact"
    LINES = "lines"
    LEGACY_BASE64 = "legacy_base64"


@dataclass(frozen=True)
class ParseResult:
    raw: str
    token: str  # Token interno (sin el envoltorio URL)
    payload: Optional[TicketPayload] = None
    dialect: Optional[TokenDialect] = None

    @property
    def recognized(self) -> bool:
        return self.payload is not None

    @property
    def server_verifiable(self) -> bool:
        """Solo tokens con IDs y emitidos por el servidor se reconcilian"""
        return bool(self.payload and self.payload.has_identifiers and not self.payload.is_fallback)


SECTION_MARKERS = (
    "PARTICIPANT:",
    "PARTICIPANT INFORMATION",
    "EVENT:",
    "EVENT INFORMATION",
    "EVENT TICKET",
    "EVENT REGISTRATION TICKET",
)

URL_TOKEN_PARAMS = ("token", "qr", "data")


# ============ ETIQUETAS DEL FORMATO POR LÍNEAS ============

def _holder(field: str):
    return lambda reader, value: reader.set_holder(field, value)


def _event(field: str):
    return lambda reader, value: reader.set_event(field, value)


def _verbose_date(reader: SegmentReader, value: str) -> None:
    moment = parse_iso_datetime(value)
    if moment is not None:
        reader.set_start(moment)


def _verbose_time(reader: SegmentReader, value: str) -> None:
    hours, _, minutes = value.partition(":")
    hours, minutes = hours.strip(), minutes.strip()[:2]
    if hours.isdigit() and minutes.isdigit():
        hour, minute = int(hours), int(minutes)
        if 0 <= hour < 24 and 0 <= minute < 60:
            reader.start_clock = time(hour, minute)


def _end_time(reader: SegmentReader, value: str) -> None:
    moment = parse_iso_datetime(value)
    if moment is not None:
        reader.set_event("end_time", moment)


def _legacy_id(reader: SegmentReader, value: str) -> None:
    # Formato "ID: <evento>-<registro>"
    ids = value.split("-")
    if len(ids) >= 2 and ids[0].strip():
        reader.set_event("id", ids[0].strip())


LINE_RULES = dict(COMPACT_RULES)
LINE_RULES.update({
    "Name:": _holder("name"),
    "Email:": _holder("email"),
    "Roll:": _holder("roll_number"),
    "Roll Number:": _holder("roll_number"),
    "Dept:": _holder("department"),
    "Department:": _holder("department"),
    "Year:": _holder("year"),
    "Sem:": _holder("class_or_semester"),
    "Semester:": _holder("class_or_semester"),
    "Title:": _event("title"),
    "Event:": _event("title"),
    "Loc:": _event("location"),
    "Location:": _event("location"),
    "Date:": _verbose_date,
    "Date & Time:": _verbose_date,
    "Time:": _verbose_time,
    "End Time:": _end_time,
    "Description:": _event("description"),
    "ID:": _legacy_id,
})


# ============ ESTRATEGIAS ============

def _has_compact_key(text: str) -> bool:
    return any(f"{key}:" in text for key, _, _, _ in COMPACT_TEXT_FIELDS)


def _has_text_markers(text: str) -> bool:
    if any(marker in text for marker in SECTION_MARKERS):
        return True
    return DELIMITER in text and _has_compact_key(text)


def parse_lines(text: str) -> Optional[TicketPayload]:
    """Formato legacy por líneas (o segmentos), etiquetas cortas y largas"""
    if not text or not text.strip():
        return None
    parts = text.split(DELIMITER) if DELIMITER in text else text.splitlines()
    reader = SegmentReader(LINE_RULES)
    for part in parts:
        trimmed = part.strip()
        if not trimmed or trimmed in SECTION_MARKERS or any(
            marker in trimmed for marker in ("PARTICIPANT INFORMATION", "EVENT INFORMATION")
        ):
            continue
        reader.feed(trimmed)
    return reader.build()


def _parse_marked_text(text: str) -> Optional[Tuple[TicketPayload, TokenDialect]]:
    if not _has_text_markers(text):
        return None
    if DELIMITER in text:
        payload = decode_compact(text)
        if payload is not None:
            return payload, TokenDialect.COMPACT
    payload = parse_lines(text)
    return (payload, TokenDialect.LINES) if payload else None


def _parse_legacy(text: str) -> Optional[Tuple[TicketPayload, TokenDialect]]:
    payload = decode_legacy(text)
    return (payload, TokenDialect.LEGACY_BASE64) if payload else None


def _parse_fallback_text(text: str) -> Optional[Tuple[TicketPayload, TokenDialect]]:
    payload = parse_lines(text)
    if payload is None:
        return None
    return payload, (TokenDialect.COMPACT if DELIMITER in text else TokenDialect.LINES)


# Orden fijo: texto con marcas -> base64 -> texto por líneas
STRATEGIES: List[Callable[[str], Optional[Tuple[TicketPayload, TokenDialect]]]] = [
    _parse_marked_text,
    _parse_legacy,
    _parse_fallback_text,
]


def extract_url_token(raw: str) -> Optional[str]:
    """Extraer el token de una URL (/qr/<token>, ?token=, o último segmento)"""
    try:
        url = urlparse(raw)
    except ValueError:
        return None
    query = parse_qs(url.query or "")
    for key in URL_TOKEN_PARAMS:
        if query.get(key):
            return query[key][0]
    path = url.path or ""
    if "/qr/" in path:
        candidate = path.split("/qr/", 1)[1].split("/")[0]
    else:
        candidate = path.rstrip("/").rsplit("/", 1)[-1]
    candidate = unquote(candidate)
    return candidate or None


def parse_token(raw: str) -> ParseResult:
    """
    Clasificar y normalizar un texto escaneado.

    URL primero (envuelve otro dialecto), luego marcas de texto explícitas,
    luego base64 y, si todo falla, parseo por líneas/segmentos.
    """
    if not isinstance(raw, str):
        return ParseResult(raw="", token="")
    text = raw.strip()
    if not text:
        return ParseResult(raw=raw, token="")

    if text.lower().startswith(("http://", "https://")):
        inner = extract_url_token(text)
        if not inner or inner.lower().startswith(("http://", "https://")):
            return ParseResult(raw=raw, token=text)
        nested = parse_token(inner)
        return ParseResult(raw=raw, token=nested.token, payload=nested.payload, dialect=nested.dialect)

    for strategy in STRATEGIES:
        parsed = strategy(text)
        if parsed is not None:
            payload, dialect = parsed
            return ParseResult(raw=raw, token=text, payload=payload, dialect=dialect)

    return ParseResult(raw=raw, token=text)
