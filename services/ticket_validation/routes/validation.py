"""Rutas de validación de tickets"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict
from shared.database.session import get_db
from shared.auth.dependencies import get_current_scanner
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.ticket_validation.models.ticket import (
    TicketValidationRequest,
    TicketValidationResponse,
    CheckInRecordResponse,
    CheckInStatsResponse,
    PhotoResponse,
)
from services.ticket_validation.services.checkin_service import CheckInService
from services.ticket_validation.services.photo_service import RegistrationPhotoService


router = APIRouter()


@router.post("/validate", response_model=TicketValidationResponse)
@limiter.limit(RATE_LIMITS["validation"])
async def validate_ticket(
    request: Request,
    validation_request: TicketValidationRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_scanner)
):
    """
    Validar un token escaneado y registrar el check-in

    Requiere autenticación de scanner/organizer/admin. Los rechazos de negocio
    responden 200 con valid=false y el motivo en error_message.
    """
    result = await CheckInService.attempt_check_in(
        db=db,
        token=validation_request.token,
        operator=current_user,
        event_id=validation_request.event_id
    )

    return TicketValidationResponse(**result)


@router.get("/registrations/{registration_id}/photo", response_model=PhotoResponse)
@limiter.limit(RATE_LIMITS["lookup"])
async def get_registration_photo(
    request: Request,
    registration_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_scanner)
):
    """Foto de perfil autoritativa de un registro"""
    try:
        photo_url = await RegistrationPhotoService.get_photo_url(db, registration_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return PhotoResponse(registration_id=registration_id, photo_url=photo_url)


@router.get("/checkins/{registration_id}", response_model=CheckInRecordResponse)
@limiter.limit(RATE_LIMITS["lookup"])
async def get_checkin_record(
    request: Request,
    registration_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_scanner)
):
    """Estado de check-in de un registro"""
    checkin = await CheckInService.get_checkin(db, registration_id)

    if not checkin:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Registro de check-in no encontrado"
        )

    return CheckInRecordResponse(
        registration_id=checkin.registration_id,
        event_id=checkin.event_id,
        user_id=checkin.user_id,
        is_checked_in=checkin.is_checked_in,
        checked_in_at=checkin.checked_in_at,
        checked_in_by=checkin.checked_in_by,
        issued_at=checkin.issued_at,
        expires_at=checkin.expires_at,
    )


@router.get("/events/{event_id}/check-in/stats", response_model=CheckInStatsResponse)
@limiter.limit(RATE_LIMITS["lookup"])
async def get_checkin_stats(
    request: Request,
    event_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: Dict = Depends(get_current_scanner)
):
    """Registrados, admitidos y pendientes de un evento"""
    stats = await CheckInService.get_event_stats(db, event_id)

    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Evento no encontrado"
        )

    return CheckInStatsResponse(**stats)
