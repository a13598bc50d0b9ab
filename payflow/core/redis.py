"""Redis connection management for Payflow Sweeper."""

import redis.asyncio as redis

from payflow.core.config import get_settings

# Lock that keeps sweep passes single-flight across Celery workers
SWEEP_LOCK_KEY = "payflow:sweep:lock"

# Redis connection pool (initialized by the worker task)
_redis_pool: redis.Redis | None = None


async def init_redis() -> None:
    """Initialize Redis connection pool."""
    global _redis_pool
    settings = get_settings()
    _redis_pool = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


def get_redis() -> redis.Redis:
    """Get Redis connection.

    Raises:
        RuntimeError: If Redis is not initialized
    """
    if _redis_pool is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_pool


def get_sweep_lock(timeout_seconds: float):
    """Non-blocking lock guarding one sweep pass.

    Args:
        timeout_seconds: Lock expiry, so a crashed worker cannot hold it forever
    """
    return get_redis().lock(SWEEP_LOCK_KEY, timeout=timeout_seconds, blocking=False)
