"""Service entry point para validación y check-in"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from services.ticket_validation.routes.validation import router
from shared.cache.redis_client import init_redis, close_redis
from shared.database.connection import init_db, close_db
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    await init_redis()
    yield
    await close_db()
    await close_redis()


app = FastAPI(title="CampusPass Check-In Service", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.include_router(router, prefix="/api/v1/tickets", tags=["check-in"])
