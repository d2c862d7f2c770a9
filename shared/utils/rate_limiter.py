"""
Rate limiting con slowapi, con storage en Redis compartido entre instancias.

Cada scanner se identifica por su token bearer; sin token se usa la IP del
cliente (respetando X-Forwarded-For detrás del proxy).
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, Response
from starlette.responses import JSONResponse
import hashlib
import os
import logging

logger = logging.getLogger(__name__)

RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI") or os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Límites por tipo de operación
RATE_LIMITS = {
    # Un titular pide su QR pocas veces
    "issuance": "20/minute",
    # Un scanner en una puerta concurrida
    "validation": "60/minute",
    # Consultas de apoyo del scanner (foto, estado, estadísticas)
    "lookup": "120/minute",
}


def client_ip(request: Request) -> str:
    """IP del cliente, tomando la primera de X-Forwarded-For si viene de un proxy"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or get_remote_address(request)


def rate_limit_key(request: Request) -> str:
    """Clave del límite: hash del token bearer o, sin token, la IP"""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        digest = hashlib.sha256(auth_header[7:].encode()).hexdigest()[:16]
        return f"token:{digest}"
    return f"ip:{client_ip(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    storage_uri=RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    headers_enabled=False,  # Incompatible con response_model de FastAPI
)
logger.info(f"Rate limiter con storage {RATE_LIMIT_STORAGE_URI.split('@')[-1]}")


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Respuesta JSON 429 con el tiempo de espera sugerido"""
    retry_after = exc.detail.split(" ")[-1] if exc.detail else "60"
    retry_seconds = int(retry_after) if retry_after.isdigit() else 60

    logger.warning(f"Rate limit excedido: {rate_limit_key(request)} en {request.url.path}")

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": "Demasiadas solicitudes. Espera antes de volver a escanear.",
            "retry_after_seconds": retry_seconds,
        },
        headers={"Retry-After": str(retry_seconds)},
    )
