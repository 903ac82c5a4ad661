"""
Shared Redis connection.

Redis holds the login session records that back every bearer token, so
the client is created once per process and looked up at call time.
"""

import logging

import redis.asyncio as redis
from dispatch_backend.app.core.config import settings

logger = logging.getLogger("dispatch.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
    socket_connect_timeout=settings.redis_timeout_seconds,
    socket_timeout=settings.redis_timeout_seconds,
)


async def get_redis():
    # Module attribute lookup so the client can be swapped at runtime
    return redis_client


async def ping_redis() -> bool:
    """Reachability check for ``/health``; never raises."""
    try:
        return bool(await redis_client.ping())
    except Exception as e:
        logger.warning("Redis ping failed: %s", e)
        return False


async def close_redis() -> None:
    try:
        await redis_client.aclose()
    except Exception as e:
        logger.warning("Error closing Redis connection: %s", e)
