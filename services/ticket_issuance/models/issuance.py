"""Modelos Pydantic para emisión de tickets"""
from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime

from shared.tickets.payload import TicketPayload, TicketHolder, TicketEvent, coerce_id


class TicketIssueRequest(BaseModel):
    event_id: int
    registration_id: int


class TicketIssueResponse(BaseModel):
    token: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_checked_in: bool = False


class IssuanceContext(BaseModel):
    """Lo que el dispositivo ya sabe del ticket antes de pedirlo"""
    event_id: str
    registration_id: str
    holder: TicketHolder = TicketHolder()
    event: TicketEvent = TicketEvent()

    @field_validator("event_id", "registration_id", mode="before")
    @classmethod
    def _ids_as_text(cls, value):
        return coerce_id(value) or ""

    def local_payload(self) -> TicketPayload:
        return TicketPayload(
            holder=self.holder,
            event=self.event.model_copy(update={"id": self.event_id or None}),
            registration_id=self.registration_id,
        )

    @property
    def has_local_data(self) -> bool:
        return not self.holder.is_empty() and not self.event.is_empty()


class IssuedTicket(BaseModel):
    token: str  # Siempre en dialecto compacto
    payload: TicketPayload
    is_fallback: bool = False
    is_checked_in: bool = False
    warning: Optional[str] = None
