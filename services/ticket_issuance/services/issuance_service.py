"""Servicio de emisión de tickets (autoridad emisora)"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from shared.database.models import Event, EventCheckin, EventRegistration
from shared.tickets.codec import encode_legacy
from shared.tickets.payload import TicketEvent, TicketHolder, TicketPayload

logger = logging.getLogger(__name__)


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Normalizar datetimes leídos del store (algunos drivers los retornan naive)"""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def checkin_expiry(event: Event) -> datetime:
    """Fin del evento (o inicio si no hay fin) más el margen de gracia"""
    reference = as_utc(event.end_time) or as_utc(event.start_time)
    return reference + timedelta(hours=settings.CHECKIN_EXPIRY_GRACE_HOURS)


def build_payload(
    registration: EventRegistration,
    event: Event,
    issued_at: datetime,
    expires_at: datetime,
    email: Optional[str] = None,
) -> TicketPayload:
    """Payload completo con los datos canónicos del store"""
    return TicketPayload(
        holder=TicketHolder(
            name=registration.participant_name,
            email=email,
            roll_number=registration.roll_number,
            department=registration.department,
            year=registration.year,
            class_or_semester=registration.class_name,
            profile_photo_url=registration.profile_photo_url,
        ),
        event=TicketEvent(
            id=event.id,
            title=event.title,
            location=event.location,
            description=event.description,
            start_time=as_utc(event.start_time),
            end_time=as_utc(event.end_time),
        ),
        registration_id=registration.id,
        user_id=registration.user_id,
        issued_at=issued_at,
        expires_at=expires_at,
    )


class TicketIssuanceService:
    """Emite el token de un registro y pre-crea su registro de check-in"""

    @staticmethod
    async def get_checkin(db: AsyncSession, registration_id: int) -> Optional[EventCheckin]:
        stmt = select(EventCheckin).where(EventCheckin.registration_id == registration_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def issue_ticket(
        db: AsyncSession,
        event_id: int,
        registration_id: int,
        user_id: str,
        email: Optional[str] = None,
    ) -> dict:
        """
        Emitir (o re-entregar) el token de un registro.

        Returns:
            dict con token, issued_at, expires_at, is_checked_in

        Raises:
            LookupError: el evento no existe
            ValueError: el registro no pertenece al usuario/evento o el evento ya terminó
        """
        event = await db.get(Event, event_id)
        if not event:
            raise LookupError("Evento no encontrado")

        stmt = select(EventRegistration).where(
            EventRegistration.id == registration_id,
            EventRegistration.event_id == event_id,
            EventRegistration.user_id == user_id,
        )
        result = await db.execute(stmt)
        registration = result.scalar_one_or_none()
        if not registration:
            raise ValueError("Registro inválido")

        # Re-emisión: el token existente se entrega sin cambios
        existing = await TicketIssuanceService.get_checkin(db, registration_id)
        if existing and existing.qr_token:
            return TicketIssuanceService._as_response(existing)

        issued_at = datetime.now(timezone.utc)
        expires_at = checkin_expiry(event)
        if expires_at <= issued_at:
            raise ValueError("El evento ya finalizó")

        token = encode_legacy(build_payload(registration, event, issued_at, expires_at, email))

        if existing:
            # Registro creado por un escaneo previo sin token
            existing.qr_token = token
            existing.issued_at = issued_at
            existing.expires_at = expires_at
            await db.commit()
            return TicketIssuanceService._as_response(existing)

        checkin = EventCheckin(
            user_id=registration.user_id,
            event_id=event.id,
            registration_id=registration.id,
            qr_token=token,
            issued_at=issued_at,
            expires_at=expires_at,
            is_checked_in=False,
        )
        db.add(checkin)
        try:
            await db.commit()
        except IntegrityError:
            # Otra emisión concurrente ganó la restricción única
            await db.rollback()
            winner = await TicketIssuanceService.get_checkin(db, registration_id)
            if winner is None:
                raise
            logger.info(f"Emisión concurrente para registro {registration_id}, se entrega el registro existente")
            if not winner.qr_token:
                winner.qr_token = token
                winner.issued_at = issued_at
                winner.expires_at = expires_at
                await db.commit()
            return TicketIssuanceService._as_response(winner)

        logger.info(f"Ticket emitido para registro {registration_id} (evento {event_id})")
        return TicketIssuanceService._as_response(checkin)

    @staticmethod
    def _as_response(checkin: EventCheckin) -> dict:
        return {
            "token": checkin.qr_token,
            "issued_at": as_utc(checkin.issued_at),
            "expires_at": as_utc(checkin.expires_at),
            "is_checked_in": bool(checkin.is_checked_in),
        }
