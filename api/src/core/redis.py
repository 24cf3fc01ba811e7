"""Redis connection management.

Provides the async Redis client backing the learner-side progress cache.
"""

import redis.asyncio as redis

from src.config.settings import Settings
from src.core.logging import get_logger


logger = get_logger(__name__)


def create_redis_client(settings: Settings) -> redis.Redis:
    """Build an async Redis client from settings (no I/O)."""
    return redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )


async def connect_redis(settings: Settings) -> redis.Redis | None:
    """Create a client and check the connection.

    Returns None when Redis is unreachable so callers can fall back to an
    in-memory cache.
    """
    client = create_redis_client(settings)
    try:
        await client.ping()
    except redis.RedisError as e:
        logger.warning("redis_connection_failed", url=settings.redis_url, error=str(e))
        await client.aclose()
        return None

    logger.info("redis_connected", url=settings.redis_url)
    return client
