"""JWT revocation using a Redis blacklist.

Tokens are blacklisted on logout until their natural expiry.
"""

import logging
import time

import redis.asyncio as redis

from nutaria.utils.redis_pool import get_redis

logger = logging.getLogger(__name__)


class TokenRevocation:

    @staticmethod
    async def revoke_token(token: str, expires_at: float) -> bool:
        """Blacklist `token` until `expires_at` (unix seconds)."""
        ttl = int(expires_at - time.time())
        if ttl <= 0:
            return True

        redis_client = await get_redis()
        try:
            await redis_client.setex(f"revoked:{token}", ttl, str(int(time.time())))
            return True
        except redis.RedisError as e:
            logger.error("Failed to revoke token: %s", e)
            return False

    @staticmethod
    async def is_revoked(token: str) -> bool:
        redis_client = await get_redis()
        try:
            return await redis_client.exists(f"revoked:{token}") > 0
        except redis.RedisError as e:
            logger.error("Failed to check token revocation: %s", e)
            # Fail closed
            return True
