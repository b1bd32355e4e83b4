"""
config/redis_client.py
Async Redis client used for request rate limiting and health reporting.
Redis is optional at runtime: if it cannot be reached on startup the API
still serves requests, just without rate limiting.
"""

import logging
from typing import Optional
import redis.asyncio as aioredis

from config.settings import settings

logger = logging.getLogger(__name__)


# ── Global client (initialized on startup) ───────────────────
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    """Initialize the Redis connection pool. Leaves the client unset if Redis is down."""
    global redis_client
    client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    try:
        await client.ping()
    except aioredis.RedisError as e:
        logger.warning(f"Redis unavailable, rate limiting disabled: {e}")
        await client.aclose()
        return
    redis_client = client


async def close_redis() -> None:
    """Close Redis connection pool."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


class RedisCache:
    """Helper class for the Redis patterns the API relies on."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    # ── Rate Limiting ─────────────────────────────────────────
    async def check_rate_limit(self, key: str, limit: int, window_seconds: int = 60) -> bool:
        """
        Fixed window rate limiter.
        Returns True if request is allowed, False if rate limited.
        """
        current_count = await self.client.incr(key)
        if current_count == 1:
            await self.client.expire(key, window_seconds)
        return current_count <= limit
