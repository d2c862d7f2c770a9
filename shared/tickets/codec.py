"""
Codec de tokens de ticket

Dos dialectos conviven en terreno:
- Compacto: segmentos `CLAVE:valor` unidos por `|`. Pensado para QR,
  trunca textos largos porque la lectura óptica empeora con el largo.
- Legacy: objeto JSON (participant/event embebidos) codificado en base64.
  Es el formato original y debe seguir siendo legible.

Ninguna función de este módulo lanza excepciones por entradas mal formadas:
los decoders retornan None.
"""
import base64
import binascii
import json
from datetime import datetime, date, time, timezone
from typing import Callable, Dict, Optional, Any, List, Tuple

from pydantic import ValidationError

from shared.tickets.payload import TicketPayload, TicketHolder, TicketEvent


DELIMITER = "|"

# (clave, sección, campo, largo máximo)
COMPACT_TEXT_FIELDS: List[Tuple[str, str, str, Optional[int]]] = [
    ("N", "holder", "name", 30),
    ("E", "holder", "email", None),
    ("R", "holder", "roll_number", None),
    ("D", "holder", "department", 20),
    ("Y", "holder", "year", None),
    ("S", "holder", "class_or_semester", None),
    ("T", "event", "title", 40),
    ("L", "event", "location", 30),
]

FALLBACK_MARKER = "1"


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """Parsear fechas ISO (acepta sufijo Z). None si no se puede"""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d %H:%M", "%d/%m/%Y %H:%M", "%d/%m/%Y", "%B %d, %Y", "%b %d, %Y"):
        try:
            return datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
    return None


def _clean(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    """
    Normalizar un valor para un segmento compacto y luego truncarlo.

    El delimitador y los saltos de línea pasan a espacio y se recortan los
    bordes antes de truncar: el valor decodificado es prefijo del valor
    normalizado, no necesariamente del original.
    """
    if value is None:
        return None
    text = str(value).replace(DELIMITER, " ").replace("\r", " ").replace("\n", " ").strip()
    if max_length is not None:
        text = text[:max_length].rstrip()
    return text or None


# ============ LECTOR DE SEGMENTOS ============

class SegmentReader:
    """
    Acumula campos de un ticket a partir de segmentos `Etiqueta:valor`.

    Lo usan el decoder compacto y el parser de texto por líneas, cada uno
    con su propia tabla de etiquetas.
    """

    def __init__(self, rules: Dict[str, Callable[["SegmentReader", str], None]]):
        # Prefijo más largo primero: "DT:" antes que "D:"
        self._rules = sorted(rules.items(), key=lambda item: len(item[0]), reverse=True)
        self.holder: Dict[str, str] = {}
        self.event: Dict[str, Any] = {}
        self.registration_id: Optional[str] = None
        self.is_fallback = False
        self.start_date: Optional[date] = None
        self.start_clock: Optional[time] = None

    def feed(self, segment: str) -> bool:
        """Procesar un segmento. Retorna False si la etiqueta no se reconoce"""
        trimmed = segment.strip()
        if not trimmed:
            return False
        for label, handler in self._rules:
            if trimmed.startswith(label):
                value = trimmed[len(label):].strip()
                if value:
                    handler(self, value)
                return True
        return False

    def set_holder(self, field: str, value: str) -> None:
        self.holder[field] = value

    def set_event(self, field: str, value: Any) -> None:
        self.event[field] = value

    def set_start(self, moment: datetime) -> None:
        self.start_date = moment.date()
        if moment.time() != time(0, 0) or self.start_clock is None:
            self.start_clock = moment.time().replace(second=0, microsecond=0, tzinfo=None)

    def _start_time(self) -> Optional[datetime]:
        if self.start_date is not None:
            return datetime.combine(self.start_date, self.start_clock or time(0, 0))
        if self.start_clock is not None:
            # Solo hora sin fecha: se asume el día de hoy
            return datetime.combine(date.today(), self.start_clock)
        return None

    def build(self) -> Optional[TicketPayload]:
        event_fields = dict(self.event)
        start = self._start_time()
        if start is not None:
            event_fields["start_time"] = start
        if not self.holder and not event_fields:
            return None
        try:
            return TicketPayload(
                holder=TicketHolder(**self.holder),
                event=TicketEvent(**event_fields),
                registration_id=self.registration_id,
                is_fallback=self.is_fallback,
            )
        except ValidationError:
            return None


def _text_handler(section: str, field: str) -> Callable[[SegmentReader, str], None]:
    def handler(reader: SegmentReader, value: str) -> None:
        if section == "holder":
            reader.set_holder(field, value)
        else:
            reader.set_event(field, value)
    return handler


def _compact_date(reader: SegmentReader, value: str) -> None:
    if len(value) == 8 and value.isdigit():
        try:
            reader.start_date = date(int(value[:4]), int(value[4:6]), int(value[6:8]))
        except ValueError:
            pass


def _compact_time(reader: SegmentReader, value: str) -> None:
    if len(value) == 4 and value.isdigit():
        try:
            reader.start_clock = time(int(value[:2]), int(value[2:4]))
        except ValueError:
            pass


def _event_id(reader: SegmentReader, value: str) -> None:
    reader.set_event("id", value)


def _registration_id(reader: SegmentReader, value: str) -> None:
    reader.registration_id = value


def _fallback_flag(reader: SegmentReader, value: str) -> None:
    reader.is_fallback = value == FALLBACK_MARKER


COMPACT_RULES: Dict[str, Callable[[SegmentReader, str], None]] = {
    f"{key}:": _text_handler(section, field)
    for key, section, field, _ in COMPACT_TEXT_FIELDS
}
COMPACT_RULES.update({
    "DT:": _compact_date,
    "TM:": _compact_time,
    "EID:": _event_id,
    "RID:": _registration_id,
    "FB:": _fallback_flag,
})


# ============ DIALECTO COMPACTO ============

def encode_compact(payload: TicketPayload) -> str:
    """
    Serializar un payload al dialecto compacto.

    Omite segmentos vacíos y trunca nombre, departamento, título y
    ubicación. Fecha y hora van en segmentos separados (YYYYMMDD / HHMM).
    """
    parts: List[str] = []
    sections = {"holder": payload.holder, "event": payload.event}

    for key, section, field, max_length in COMPACT_TEXT_FIELDS:
        value = _clean(getattr(sections[section], field), max_length)
        if value:
            parts.append(f"{key}:{value}")

    start = payload.event.start_time
    if start is not None:
        parts.append(f"DT:{start.strftime('%Y%m%d')}")
        parts.append(f"TM:{start.strftime('%H%M')}")

    event_id = _clean(payload.event.id)
    if event_id:
        parts.append(f"EID:{event_id}")
    registration_id = _clean(payload.registration_id)
    if registration_id:
        parts.append(f"RID:{registration_id}")
    if payload.is_fallback:
        parts.append(f"FB:{FALLBACK_MARKER}")

    return DELIMITER.join(parts)


def decode_compact(text: str) -> Optional[TicketPayload]:
    """Decodificar el dialecto compacto. None si no hay datos reconocibles"""
    if not isinstance(text, str) or not text.strip():
        return None
    reader = SegmentReader(COMPACT_RULES)
    for segment in text.split(DELIMITER):
        reader.feed(segment)  # Segmentos desconocidos se ignoran
    return reader.build()


# ============ DIALECTO LEGACY (base64 + JSON) ============

def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _epoch_ms(moment: Optional[datetime]) -> Optional[int]:
    if moment is None:
        return None
    return int(_as_utc(moment).timestamp() * 1000)


def _from_epoch_ms(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return parse_iso_datetime(value)
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _json_id(value: Optional[str]) -> Any:
    if value is not None and value.isdigit():
        return int(value)
    return value


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def encode_legacy(payload: TicketPayload) -> str:
    """Serializar un payload al dialecto legacy (JSON en base64)"""
    holder = payload.holder
    event = payload.event
    data = {
        "user_id": payload.user_id or "",
        "event_id": _json_id(event.id),
        "registration_id": _json_id(payload.registration_id),
        "issued_at": _iso(payload.issued_at),
        "exp": _epoch_ms(payload.expires_at),
        "participant": {
            "name": holder.name,
            "email": holder.email,
            "roll_number": holder.roll_number,
            "department": holder.department,
            "year": holder.year,
            "class": holder.class_or_semester,
            "profile_photo_url": holder.profile_photo_url,
        },
        "event": {
            "id": _json_id(event.id),
            "title": event.title,
            "description": event.description,
            "location": event.location,
            "start_time": _iso(event.start_time),
            "end_time": _iso(event.end_time),
        },
    }
    if payload.is_fallback:
        data["fallback"] = True
    raw = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def _b64_decode(text: str) -> Optional[bytes]:
    token = text.strip().replace("-", "+").replace("_", "/")
    if not token:
        return None
    token += "=" * (-len(token) % 4)
    try:
        return base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError):
        return None


def load_legacy_object(text: str) -> Optional[Dict[str, Any]]:
    """base64 -> dict JSON. None si cualquiera de los pasos falla"""
    if not isinstance(text, str):
        return None
    raw = _b64_decode(text)
    if raw is None:
        return None
    for encoding in ("utf-8", "latin-1"):
        try:
            data = json.loads(raw.decode(encoding))
            break
        except (UnicodeDecodeError, json.JSONDecodeError):
            continue
    else:
        return None
    return data if isinstance(data, dict) else None


def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value).strip() or None


def payload_from_legacy_object(data: Dict[str, Any]) -> Optional[TicketPayload]:
    """Mapear los objetos embebidos participant/event a un TicketPayload"""
    participant = data.get("participant") if isinstance(data.get("participant"), dict) else {}
    event = data.get("event") if isinstance(data.get("event"), dict) else {}

    holder = TicketHolder(
        name=_text(participant.get("name")),
        email=_text(participant.get("email")),
        roll_number=_text(participant.get("roll_number")),
        department=_text(participant.get("department")),
        year=_text(participant.get("year")),
        class_or_semester=_text(participant.get("class") or participant.get("semester")),
        profile_photo_url=_text(participant.get("profile_photo_url")),
    )
    ticket_event = TicketEvent(
        id=_text(event.get("id")) or _text(data.get("event_id")),
        title=_text(event.get("title")),
        location=_text(event.get("location")),
        description=_text(event.get("description")),
        start_time=parse_iso_datetime(event.get("start_time")),
        end_time=parse_iso_datetime(event.get("end_time")),
    )
    if holder.is_empty() and ticket_event.is_empty():
        return None

    registration_id = (
        _text(data.get("registration_id"))
        or _text(data.get("rid"))
        or _text(data.get("registrationId"))
        or _text(event.get("registration_id"))
    )
    # Sin zona horaria se asume UTC, igual que al codificar exp
    issued_at = _as_utc(parse_iso_datetime(data.get("issued_at")))
    expires_at = _as_utc(_from_epoch_ms(data.get("exp")))
    if issued_at and expires_at and expires_at <= issued_at:
        # Tokens antiguos usaban el fin del evento como exp; manda exp
        issued_at = None

    try:
        return TicketPayload(
            holder=holder,
            event=ticket_event,
            registration_id=registration_id,
            user_id=_text(data.get("user_id")),
            issued_at=issued_at,
            expires_at=expires_at,
            is_fallback=bool(data.get("fallback")),
        )
    except ValidationError:
        return None


def decode_legacy(text: str) -> Optional[TicketPayload]:
    """Decodificar el dialecto legacy. None si no es base64/JSON de ticket"""
    data = load_legacy_object(text)
    if data is None:
        return None
    return payload_from_legacy_object(data)
