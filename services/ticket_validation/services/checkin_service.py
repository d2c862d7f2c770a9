"""
Servicio de check-in (backing store)

Único dueño del estado de admisión. La transición no-admitido -> admitido es
un UPDATE condicional atómico: con escáneres concurrentes en distintas
puertas, el primero en llegar obtiene Confirmed y el resto AlreadyAdmitted.
"""
from datetime import datetime, timezone
from typing import Dict, Optional
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import false, true

from shared.cache.redis_client import cache_delete, cache_get, cache_set, checkin_stats_key
from shared.database.models import Event, EventCheckin, EventRegistration, Profile
from shared.tickets.parser import parse_token
from services.ticket_issuance.services.issuance_service import as_utc, checkin_expiry
from services.ticket_validation.models.ticket import CheckInStatus

logger = logging.getLogger(__name__)

# Roles que pueden admitir en cualquier evento; un organizer solo en los suyos
STAFF_ROLES = ("admin", "scanner")

STATS_CACHE_SECONDS = 15


def _as_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _rejected(message: str, registration_id: Optional[int] = None) -> dict:
    return {
        "valid": False,
        "success": False,
        "already_checked_in": False,
        "status": CheckInStatus.REJECTED,
        "registration_id": str(registration_id) if registration_id is not None else None,
        "error_message": message,
    }


class CheckInService:
    """Servicio para reconciliar tokens escaneados contra el store"""

    @staticmethod
    async def get_checkin(
        db: AsyncSession,
        registration_id: int,
        refresh: bool = False
    ) -> Optional[EventCheckin]:
        stmt = select(EventCheckin).where(EventCheckin.registration_id == registration_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_checkin(
        db: AsyncSession,
        registration: EventRegistration,
        event: Event
    ) -> EventCheckin:
        """Registro de check-in del registro; se crea si nunca se emitió token"""
        checkin = await CheckInService.get_checkin(db, registration.id)
        if checkin:
            return checkin

        checkin = EventCheckin(
            user_id=registration.user_id,
            event_id=event.id,
            registration_id=registration.id,
            qr_token=None,
            issued_at=datetime.now(timezone.utc),
            expires_at=checkin_expiry(event),
            is_checked_in=False,
        )
        db.add(checkin)
        try:
            await db.commit()
        except IntegrityError:
            # Otro escáner creó el registro primero
            await db.rollback()
            checkin = await CheckInService.get_checkin(db, registration.id, refresh=True)
            if checkin is None:
                raise
        return checkin

    @staticmethod
    async def attempt_check_in(
        db: AsyncSession,
        token: str,
        operator: Dict,
        event_id: Optional[int] = None
    ) -> dict:
        """
        Intentar admitir al titular de un token.

        Acepta cualquier dialecto que entienda el parser compartido y
        reconcilia por registration_id. Idempotente: el mismo registro da
        Confirmed una sola vez y AlreadyAdmitted después.

        Returns:
            dict con valid, success, already_checked_in, checked_in_at,
            status, holder, event, error_message
        """
        parsed = parse_token(token)
        if not parsed.recognized:
            return _rejected("Formato de QR inválido")

        payload = parsed.payload
        registration_id = _as_int(payload.registration_id)
        token_event_id = _as_int(payload.event.id)
        if registration_id is None or token_event_id is None:
            return _rejected("Estructura de token inválida")

        if payload.is_fallback:
            return _rejected("Ticket de respaldo: no verificable en el servidor", registration_id)

        now = datetime.now(timezone.utc)
        expires_at = as_utc(payload.expires_at)
        if expires_at and expires_at < now:
            return _rejected("Código QR expirado", registration_id)

        if event_id is not None and event_id != token_event_id:
            return _rejected("Ticket no corresponde a este evento", registration_id)

        stmt = select(EventRegistration).where(
            EventRegistration.id == registration_id,
            EventRegistration.event_id == token_event_id,
        )
        result = await db.execute(stmt)
        registration = result.scalar_one_or_none()
        event = await db.get(Event, token_event_id)
        if not registration or not event:
            return _rejected("Usuario no registrado para este evento", registration_id)

        operator_id = operator.get("user_id")
        if operator.get("role") not in STAFF_ROLES and event.organizer_id != operator_id:
            return _rejected("No tienes permiso para hacer check-in en este evento", registration_id)

        checkin = await CheckInService.get_or_create_checkin(db, registration, event)
        record_expiry = as_utc(checkin.expires_at)
        if record_expiry and record_expiry < now:
            return _rejected("Código QR expirado", registration_id)

        # Transición atómica: solo una solicitud puede afectar la fila
        stmt = (
            update(EventCheckin)
            .where(
                EventCheckin.registration_id == registration_id,
                EventCheckin.is_checked_in == false(),
            )
            .values(is_checked_in=True, checked_in_at=now, checked_in_by=operator_id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        await db.commit()

        response = {
            "valid": True,
            "registration_id": str(registration_id),
            "holder": await CheckInService._holder_info(db, registration),
            "event": {
                "id": str(event.id),
                "title": event.title,
                "location": event.location,
                "start_time": as_utc(event.start_time),
            },
        }

        if result.rowcount == 1:
            logger.info(f"Check-in confirmado para registro {registration_id} por {operator_id}")
            await CheckInService._invalidate_stats(event.id)
            response.update({
                "success": True,
                "already_checked_in": False,
                "checked_in_at": now,
                "status": CheckInStatus.CONFIRMED,
            })
            return response

        checkin = await CheckInService.get_checkin(db, registration_id, refresh=True)
        logger.info(f"Registro {registration_id} ya admitido el {checkin.checked_in_at}")
        response.update({
            "success": False,
            "already_checked_in": True,
            "checked_in_at": as_utc(checkin.checked_in_at),
            "status": CheckInStatus.ALREADY_ADMITTED,
        })
        return response

    @staticmethod
    async def _holder_info(db: AsyncSession, registration: EventRegistration) -> dict:
        profile = await db.get(Profile, registration.user_id)
        return {
            "name": registration.participant_name or (profile.name if profile else None),
            "email": profile.email if profile else None,
            "roll_number": registration.roll_number,
            "department": registration.department,
            "year": registration.year,
            "class_or_semester": registration.class_name,
            "profile_photo_url": registration.profile_photo_url,
        }

    @staticmethod
    async def _invalidate_stats(event_id: int):
        try:
            await cache_delete(checkin_stats_key(event_id))
        except Exception as e:
            logger.warning(f"No se pudo invalidar cache de estadísticas del evento {event_id}: {e}")

    @staticmethod
    async def get_event_stats(db: AsyncSession, event_id: int) -> Optional[dict]:
        """Registros, admitidos y pendientes de un evento (cache corto en Redis)"""
        cache_key = checkin_stats_key(event_id)
        try:
            cached = await cache_get(cache_key)
            if cached:
                return cached
        except Exception as e:
            logger.warning(f"Error leyendo cache de estadísticas: {e}")

        event = await db.get(Event, event_id)
        if not event:
            return None

        total = await db.scalar(
            select(func.count(EventRegistration.id)).where(EventRegistration.event_id == event_id)
        )
        checked_in = await db.scalar(
            select(func.count(EventCheckin.id)).where(
                EventCheckin.event_id == event_id,
                EventCheckin.is_checked_in == true(),
            )
        )
        stats = {
            "event_id": event_id,
            "total_registrations": total or 0,
            "checked_in": checked_in or 0,
            "pending": (total or 0) - (checked_in or 0),
        }

        try:
            await cache_set(cache_key, stats, expire=STATS_CACHE_SECONDS)
        except Exception as e:
            logger.warning(f"Error guardando cache de estadísticas: {e}")
        return stats
