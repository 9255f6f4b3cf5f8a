"""
Redis connection for the shared per-channel lock backend.
Separated from business logic for clean architecture.
"""

from typing import Optional

import redis.asyncio as redis

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create the Redis client. Fails loudly: the lock backend needs it."""
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        await client.ping()
        logger.info("redis_connected", url=settings.REDIS_URL)
        _redis_client = client

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def get_redis_status() -> dict:
    """Connection status for the health endpoint."""
    if _redis_client is None:
        return {"status": "disabled"}
    try:
        await _redis_client.ping()
        return {"status": "connected"}
    except Exception as e:
        return {"status": "error", "error": str(e)}
