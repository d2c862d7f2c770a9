"""Cache Redis para las consultas de apoyo del scanner"""
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
import os
import json
from typing import Optional, Any
import logging

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
redis_pool: Optional[ConnectionPool] = None

KEY_PREFIX = os.getenv("CACHE_KEY_PREFIX", "campuspass")


async def init_redis():
    """Crear el pool de conexiones a partir de REDIS_URL"""
    global redis_client, redis_pool

    max_connections = int(os.getenv("REDIS_MAX_CONNECTIONS", "20"))
    redis_pool = ConnectionPool.from_url(
        os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        password=os.getenv("REDIS_PASSWORD"),
        max_connections=max_connections,
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    redis_client = redis.Redis(connection_pool=redis_pool)

    # El cache es opcional: si Redis no responde los servicios leen del store
    try:
        await redis_client.ping()
        logger.info(f"Redis conectado (max_connections={max_connections})")
    except Exception as e:
        logger.error(f"Redis no disponible: {e}")


async def get_redis() -> redis.Redis:
    if redis_client is None:
        await init_redis()
    return redis_client


async def close_redis():
    global redis_client, redis_pool
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None
    logger.info("Redis desconectado")


async def cache_get(key: str) -> Optional[Any]:
    """Valor cacheado (JSON decodificado si corresponde) o None"""
    redis_conn = await get_redis()
    value = await redis_conn.get(key)
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


async def cache_set(key: str, value: Any, expire: int = 3600):
    redis_conn = await get_redis()
    if not isinstance(value, str):
        value = json.dumps(value, default=str)
    await redis_conn.set(key, value, ex=expire)


async def cache_delete(key: str):
    redis_conn = await get_redis()
    await redis_conn.delete(key)


def registration_photo_key(registration_id: int) -> str:
    return f"{KEY_PREFIX}:registration:{registration_id}:photo"


def checkin_stats_key(event_id: int) -> str:
    return f"{KEY_PREFIX}:event:{event_id}:checkin_stats"
