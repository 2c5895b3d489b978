"""
Unit tests for RankCache and ParticipantScoreCache.

Both caches must degrade to a miss (or a dropped write) when Redis fails.
"""

from typing import Any, Dict, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from rankstream.modules.ranking.cache import ParticipantScoreCache, RankCache

pytestmark = pytest.mark.unit


class FakeRedis:
    """Dict-backed stand-in for the RedisService class API."""

    def __init__(self, broken: bool = False) -> None:
        self.data: Dict[str, Any] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.broken = broken

    def _check(self) -> None:
        if self.broken:
            raise RedisConnectionError("redis down")

    async def get_json(self, key):
        self._check()
        return self.data.get(key)

    async def set_json(self, key, value, ttl=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ttl=None):
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys):
        self._check()
        return sum(1 for key in keys if self.data.pop(key, None) is not None)


SNAPSHOT = {
    "entries": [{"rank": 1, "participant_id": "p-1", "display_name": "alice", "score": 10}],
    "total_participants": 1,
    "computed_at": "2026-01-01T00:00:00+00:00",
}


class TestRankCache:
    """Test the shared top-N snapshot."""

    async def test_store_then_get(self, fake_config):
        redis = FakeRedis()
        cache = RankCache(fake_config, redis)

        assert await cache.store(SNAPSHOT) is True
        assert await cache.get() == SNAPSHOT
        assert redis.ttls[cache.key] == 30

    async def test_invalidate_clears_snapshot(self, fake_config):
        cache = RankCache(fake_config, FakeRedis())
        await cache.store(SNAPSHOT)

        assert await cache.invalidate() is True
        assert await cache.get() is None

    async def test_malformed_snapshot_is_a_miss(self, fake_config):
        redis = FakeRedis()
        cache = RankCache(fake_config, redis)
        redis.data[cache.key] = {"entries": "nope"}

        assert await cache.get() is None

    async def test_failures_degrade(self, fake_config):
        """Redis errors become a miss, a dropped write and a failed invalidation."""
        cache = RankCache(fake_config, FakeRedis(broken=True))

        assert await cache.get() is None
        assert await cache.store(SNAPSHOT) is False
        assert await cache.invalidate() is False

    async def test_refill_dropped_after_invalidation(self, fake_config):
        """A snapshot read before a mutation's invalidation is not written back."""
        redis = FakeRedis()
        cache = RankCache(fake_config, redis)
        read_generation = cache.generation

        await cache.invalidate()

        assert await cache.store(SNAPSHOT, generation=read_generation) is False
        assert cache.key not in redis.data

    async def test_refill_removed_when_invalidated_during_write(self, fake_config):
        redis = FakeRedis()
        cache = RankCache(fake_config, redis)
        read_generation = cache.generation
        original_set = redis.set_json

        async def set_then_invalidate(key, value, ttl=None):
            written = await original_set(key, value, ttl)
            cache._generation += 1
            return written

        redis.set_json = set_then_invalidate

        assert await cache.store(SNAPSHOT, generation=read_generation) is False
        assert cache.key not in redis.data

    async def test_refill_with_current_generation_is_written(self, fake_config):
        redis = FakeRedis()
        cache = RankCache(fake_config, redis)
        await cache.invalidate()

        assert await cache.store(SNAPSHOT, generation=cache.generation) is True
        assert await cache.get() == SNAPSHOT

    def test_key_and_ttl_from_config(self, fake_config):
        fake_config.values["ranking.cache.key"] = "custom:top"
        fake_config.values["ranking.cache.ttl_seconds"] = 5
        cache = RankCache(fake_config, FakeRedis())

        assert cache.key == "custom:top"
        assert cache.ttl_seconds == 5


class TestParticipantScoreCache:
    """Test per-participant score entries."""

    async def test_roundtrip(self, fake_config):
        redis = FakeRedis()
        cache = ParticipantScoreCache(fake_config, redis)

        await cache.store("p-1", 42)

        assert redis.data["participant_score:p-1"] == "42"
        assert await cache.get("p-1") == 42

    async def test_corrupt_entry_is_a_miss(self, fake_config):
        redis = FakeRedis()
        cache = ParticipantScoreCache(fake_config, redis)
        redis.data["participant_score:p-1"] = "forty-two"

        assert await cache.get("p-1") is None

    async def test_failures_degrade(self, fake_config):
        cache = ParticipantScoreCache(fake_config, FakeRedis(broken=True))

        assert await cache.get("p-1") is None
        await cache.store("p-1", 1)
        assert await cache.invalidate("p-1") is False
