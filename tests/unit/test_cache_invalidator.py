"""
Unit tests for CacheInvalidator

Tests path collection, publishing after commit and tolerance of Redis failures.
"""
import json

from redis.exceptions import ConnectionError as RedisConnectionError

from carepath.services.cache_invalidator import REVALIDATE_CHANNEL, CacheInvalidator


class FakeRedis:
    """Records publish calls; optionally fails"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages = []

    async def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.messages.append((channel, message))
        return 1


class TestCollection:
    def test_mark_deduplicates_in_order(self):
        cache = CacheInvalidator()
        cache.mark("/patient", "/patient/programs")
        cache.mark("/patient")
        assert cache.pending == ["/patient", "/patient/programs"]

    def test_discard(self):
        cache = CacheInvalidator()
        cache.mark("/patient")
        cache.discard()
        assert cache.pending == []


class TestFlush:
    async def test_flush_without_redis_records_paths(self):
        cache = CacheInvalidator()
        cache.mark("/admin/programs")

        paths = await cache.flush()

        assert paths == ["/admin/programs"]
        assert cache.published == [["/admin/programs"]]
        assert cache.pending == []

    async def test_flush_publishes_json_payload(self):
        redis = FakeRedis()
        cache = CacheInvalidator(redis)
        cache.mark("/patient/mood")

        await cache.flush()

        assert redis.messages == [(REVALIDATE_CHANNEL, json.dumps({"paths": ["/patient/mood"]}))]

    async def test_flush_with_nothing_pending_publishes_nothing(self):
        redis = FakeRedis()
        cache = CacheInvalidator(redis)

        assert await cache.flush() == []
        assert redis.messages == []

    async def test_redis_failure_is_not_raised(self):
        cache = CacheInvalidator(FakeRedis(fail=True))
        cache.mark("/patient")

        paths = await cache.flush()

        assert paths == ["/patient"]
        assert cache.pending == []
