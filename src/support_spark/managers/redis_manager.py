"""
Redis connection manager.

Shared by the Redis session store and the Redis rate-limit backend. The client is
created lazily from `Settings.effective_redis_url` and closed on shutdown.
"""

from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from support_spark.config import Settings
from support_spark.managers.logging_manager import get_logger

logger = get_logger(prefix="[RedisManager]")


class RedisManager:
    def __init__(self, settings: Settings):
        self.settings = settings
        self._redis: Optional[aioredis.Redis] = None

    async def get_redis(self) -> aioredis.Redis:
        """Return the shared client, creating it on first use."""
        if self._redis is None:
            self._redis = aioredis.from_url(self.settings.effective_redis_url, decode_responses=True)
            logger.info("Redis client created")
        return self._redis

    async def health_check(self) -> bool:
        try:
            client = await self.get_redis()
            await client.ping()
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False
        return True

    async def close(self):
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis client closed")
