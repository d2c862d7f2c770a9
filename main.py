"""API principal de CampusPass: emisión de tickets y check-in de eventos"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
import os
import logging
from contextlib import asynccontextmanager
from typing import List, Tuple

from shared.database import connection
from shared.cache.redis_client import init_redis, close_redis, get_redis
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

DEV_ORIGINS = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Iniciando CampusPass API...")
    await connection.init_db()
    await init_redis()
    yield
    logger.info("Cerrando CampusPass API...")
    await connection.close_db()
    await close_redis()


def cors_settings() -> Tuple[List[str], bool]:
    """Orígenes permitidos; en desarrollo cualquiera (sin credenciales)"""
    if os.getenv("APP_ENV", "development") == "development":
        return ["*"], False
    origins = os.getenv("CORS_ORIGINS", DEV_ORIGINS)
    return [origin.strip() for origin in origins.split(",") if origin.strip()], True


app = FastAPI(
    title="CampusPass API",
    description="Emisión de tickets QR y check-in para eventos del campus",
    version="1.0.0",
    lifespan=lifespan
)

allow_origins, allow_credentials = cors_settings()
logger.info(f"CORS: {allow_origins}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

from services.ticket_issuance.routes.issuance import router as issuance_router
from services.ticket_validation.routes.validation import router as validation_router

app.include_router(issuance_router, prefix="/api/v1/tickets", tags=["issuance"])
app.include_router(validation_router, prefix="/api/v1/tickets", tags=["check-in"])


@app.get("/health")
async def health():
    return {"status": "ok", "service": "campuspass-api"}


@app.get("/ready")
async def ready():
    """Verifica base de datos y Redis; 503 si alguno falla"""
    checks = {}
    try:
        async with connection.async_session_maker() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as e:
        logger.error(f"Ready check: base de datos no disponible: {e}")
        checks["database"] = f"error: {e}"

    try:
        redis = await get_redis()
        await redis.ping()
        checks["redis"] = "connected"
    except Exception as e:
        logger.error(f"Ready check: Redis no disponible: {e}")
        checks["redis"] = f"error: {e}"

    if all(value == "connected" for value in checks.values()):
        return {"status": "ready", **checks}
    return JSONResponse(status_code=503, content={"status": "not ready", **checks})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("APP_DEBUG", "False").lower() == "true"
    )
