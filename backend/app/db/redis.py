"""
Redis connection management.

Provides async Redis connection for:
- Per-job overlap locks (see app.tasks.job_helpers)
- Health checks

Celery talks to Redis on its own (broker/result backend) and does not use
this client.
"""

from typing import Optional

from redis.asyncio import ConnectionPool, Redis

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Global connection pool
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis() -> Redis:
    """
    Initialize Redis connection pool.

    Called lazily on first use, and again after close_redis() when a Celery
    job starts a new event loop.
    """
    global _redis_pool, _redis_client

    if _redis_pool is None:
        logger.info("initializing_redis_pool", max_connections=20)

        # Format: redis://localhost:6379/0
        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=20,
            socket_connect_timeout=5,
            socket_keepalive=True
        )

        _redis_client = Redis(connection_pool=_redis_pool)

        try:
            await _redis_client.ping()
            logger.info("redis_connection_successful")
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e), error_type=type(e).__name__)
            await close_redis()
            raise

    return _redis_client


async def get_redis() -> Redis:
    """Get Redis client instance."""
    if _redis_client is None:
        return await init_redis()
    return _redis_client


async def close_redis():
    """
    Close Redis connection pool.

    Called during application shutdown and at the end of every job loop.
    """
    global _redis_pool, _redis_client

    if _redis_client:
        logger.debug("closing_redis_connection")
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool:
        await _redis_pool.disconnect()
        _redis_pool = None


# ========================================
# Health Check
# ========================================

async def check_redis_health() -> bool:
    """
    Check if Redis is healthy and responsive.

    Returns:
        bool: True if Redis is healthy, False otherwise
    """
    try:
        redis = await get_redis()
        response = await redis.ping()
        return response is True
    except Exception as e:
        logger.error("redis_health_check_failed", error=str(e))
        return False
