"""Modelo canónico de un ticket (independiente del dialecto del token)"""
from datetime import datetime
from typing import Optional, Any
from pydantic import BaseModel, ConfigDict, field_validator, model_validator


UNKNOWN_VALUE = "Desconocido"


def coerce_id(value: Any) -> Optional[str]:
    """Los IDs viajan como texto: 7 -> "7", "" -> None"""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("ID inválido")
    value = str(value).strip()
    return value or None


class TicketHolder(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    email: Optional[str] = None
    roll_number: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None
    class_or_semester: Optional[str] = None
    profile_photo_url: Optional[str] = None

    @field_validator("year", "roll_number", "class_or_semester", mode="before")
    @classmethod
    def _numbers_as_text(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    def is_empty(self) -> bool:
        return not any([
            self.name, self.email, self.roll_number, self.department,
            self.year, self.class_or_semester
        ])


class TicketEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    title: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        return coerce_id(value)

    def is_empty(self) -> bool:
        return not any([self.id, self.title, self.location, self.start_time])


class TicketPayload(BaseModel):
    """
    Ticket lógico que se mueve por todo el subsistema.

    Es un valor inmutable: una vez serializado a token no se modifica,
    una re-emisión crea un payload nuevo (usar model_copy).
    """
    model_config = ConfigDict(frozen=True)

    holder: TicketHolder = TicketHolder()
    event: TicketEvent = TicketEvent()
    registration_id: Optional[str] = None
    user_id: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_fallback: bool = False

    @field_validator("registration_id", "user_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        return coerce_id(value)

    @model_validator(mode="after")
    def _check_expiry_after_issue(self):
        if self.issued_at and self.expires_at:
            issued, expires = self.issued_at, self.expires_at
            # Comparar solo si ambos tienen (o ambos no tienen) zona horaria
            if (issued.tzinfo is None) == (expires.tzinfo is None) and expires <= issued:
                raise ValueError("expires_at debe ser posterior a issued_at")
        return self

    @property
    def has_identifiers(self) -> bool:
        return bool(self.registration_id and self.event.id)

    @property
    def has_holder_data(self) -> bool:
        return not self.holder.is_empty()

    @property
    def has_event_data(self) -> bool:
        return not self.event.is_empty()


def display_value(value: Any) -> str:
    """Valor para mostrar al operador, con placeholder si falta"""
    if value is None:
        return UNKNOWN_VALUE
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    text = str(value).strip()
    return text or UNKNOWN_VALUE
