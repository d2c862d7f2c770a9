"""Foto autoritativa del titular para el scanner"""
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from shared.cache.redis_client import cache_get, cache_set, registration_photo_key
from shared.database.models import EventRegistration

logger = logging.getLogger(__name__)


class RegistrationPhotoService:

    @staticmethod
    async def get_photo_url(db: AsyncSession, registration_id: int) -> Optional[str]:
        """
        URL de la foto de perfil de un registro.

        Raises:
            LookupError: el registro no existe
        """
        cache_key = registration_photo_key(registration_id)
        try:
            cached = await cache_get(cache_key)
            if isinstance(cached, dict):
                return cached.get("photo_url")
        except Exception as e:
            logger.warning(f"Error leyendo cache de foto: {e}")

        registration = await db.get(EventRegistration, registration_id)
        if not registration:
            raise LookupError("Registro no encontrado")

        photo_url = registration.profile_photo_url
        try:
            await cache_set(cache_key, {"photo_url": photo_url}, expire=settings.PHOTO_CACHE_SECONDS)
        except Exception as e:
            logger.warning(f"Error guardando cache de foto: {e}")
        return photo_url
