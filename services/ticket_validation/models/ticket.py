"""Modelos Pydantic para validación de tickets"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class CheckInStatus(str, Enum):
    CONFIRMED = "confirmed"
    ALREADY_ADMITTED = "already_admitted"
    REJECTED = "rejected"


class TicketValidationRequest(BaseModel):
    token: str
    event_id: Optional[int] = None  # Evento seleccionado en el scanner


class HolderInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    roll_number: Optional[str] = None
    department: Optional[str] = None
    year: Optional[str] = None
    class_or_semester: Optional[str] = None
    profile_photo_url: Optional[str] = None


class EventInfo(BaseModel):
    id: Optional[str] = None
    title: Optional[str] = None
    location: Optional[str] = None
    start_time: Optional[datetime] = None


class TicketValidationResponse(BaseModel):
    valid: bool
    success: bool = False
    already_checked_in: bool = False
    checked_in_at: Optional[datetime] = None
    status: Optional[CheckInStatus] = None
    registration_id: Optional[str] = None
    holder: Optional[HolderInfo] = None
    event: Optional[EventInfo] = None
    error_message: Optional[str] = None


class CheckInRecordResponse(BaseModel):
    registration_id: int
    event_id: int
    user_id: str
    is_checked_in: bool
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class PhotoResponse(BaseModel):
    registration_id: int
    photo_url: Optional[str] = None


class CheckInStatsResponse(BaseModel):
    event_id: int
    total_registrations: int
    checked_in: int
    pending: int
