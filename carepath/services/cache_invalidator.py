"""
Cache Invalidation Signals

Publishes the UI paths touched by a committed mutation on a Redis channel
so the rendering layer can refresh them.
"""
import json
import logging
from typing import List, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

REVALIDATE_CHANNEL = "carepath:revalidate"


class CacheInvalidator:
    """Collects affected paths during a unit of work and publishes them after commit"""

    def __init__(self, redis: Optional[aioredis.Redis] = None, channel: str = REVALIDATE_CHANNEL):
        self.redis = redis
        self.channel = channel
        self.pending: List[str] = []
        self.published: List[List[str]] = []

    def mark(self, *paths: str) -> None:
        for path in paths:
            if path not in self.pending:
                self.pending.append(path)

    def discard(self) -> None:
        self.pending.clear()

    async def flush(self) -> List[str]:
        """Publish pending paths; returns what was signalled."""
        paths, self.pending = self.pending, []
        if not paths:
            return paths

        self.published.append(paths)

        if self.redis is None:
            logger.debug(f"Redis disabled, dropping revalidation of {len(paths)} paths")
            return paths

        try:
            await self.redis.publish(self.channel, json.dumps({"paths": paths}))
        except RedisError as e:
            # Data is already committed; a missed signal only delays a UI refresh
            logger.warning(f"Failed to publish revalidation for {paths}: {e}")
        return paths
