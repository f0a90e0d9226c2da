"""
TrafficWatch - Redis Client Manager.

Manages the async Redis connection used for blocklist metadata.
"""

from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as aioredis

from trafficwatch.config import settings

logger = logging.getLogger("trafficwatch.storage.redis")


class RedisManager:
    """Holds a shared async Redis client; ``client`` is None while offline."""

    def __init__(self) -> None:
        self.client: Optional[aioredis.Redis] = None

    async def connect(self, url: Optional[str] = None) -> None:
        client = aioredis.from_url(
            url or settings.redis_url,
            decode_responses=True,
            max_connections=20,
        )
        # If the ping fails, self.client stays None
        await client.ping()
        self.client = client
        logger.info("Redis connected: %s", url or settings.redis_url)

    async def disconnect(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Redis disconnected")

    async def health_check(self) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.ping()
            return True
        except aioredis.RedisError:
            logger.warning("Redis health check failed")
            return False


redis_manager = RedisManager()
