"""
TrafficWatch - Blocklist Metadata.

Records which sources the reputation calculator has flagged as blocked,
in a Redis hash keyed by IP. Nothing is enforced here; downstream
firewalls may read the hash if they choose to.
"""

from __future__ import annotations

import json
import logging
import time

import redis.asyncio as aioredis

from trafficwatch.detection.models import ReputationEntry
from trafficwatch.storage.redis_client import RedisManager, redis_manager

logger = logging.getLogger("trafficwatch.mitigation.blocklist")


class Blocklist:
    """Blocked-source metadata stored in Redis (no-op while Redis is offline)."""

    BLOCKLIST_KEY = "trafficwatch:blocked"

    def __init__(self, manager: RedisManager = redis_manager) -> None:
        self.manager = manager

    async def record(self, entry: ReputationEntry) -> bool:
        """Store or refresh the block metadata for a blocked entry."""
        redis = self.manager.client
        if redis is None or not entry.is_blocked:
            return False
        payload = json.dumps({
            "reason": entry.block_reason,
            "reputation_score": entry.reputation_score,
            "blocked_at": time.time(),
        })
        try:
            await redis.hset(self.BLOCKLIST_KEY, entry.ip_address, payload)
        except aioredis.RedisError:
            logger.exception("Failed to record block for %s", entry.ip_address)
            return False
        logger.warning("Marked %s as blocked: %s", entry.ip_address, entry.block_reason)
        return True

    async def clear(self, ip: str) -> None:
        redis = self.manager.client
        if redis is None:
            return
        await redis.hdel(self.BLOCKLIST_KEY, ip)
        logger.info("Cleared block metadata for %s", ip)

    async def blocked(self) -> dict[str, dict]:
        """Return all blocked IPs with their metadata."""
        redis = self.manager.client
        if redis is None:
            return {}
        raw = await redis.hgetall(self.BLOCKLIST_KEY)
        return {ip: json.loads(data) for ip, data in raw.items()}


blocklist = Blocklist()
