"""Shared Redis client.

Created on first use and closed from the app lifespan.  Used for token
revocation and the metal detector countdown timer.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from nutaria.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create the Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
        logger.debug("Redis client created for %s", settings.redis_url)
    return _redis_client


async def close_redis():
    """Close the Redis client (call on app shutdown)."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
