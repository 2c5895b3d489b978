"""
Rank caches backed by Redis.

- ``RankCache`` holds one canonical snapshot of the top
  ``ranking.cache.window_size`` entries under ``ranking.cache.key`` with a
  short TTL. Zero-offset listings are served as slices of it.
- ``ParticipantScoreCache`` holds individual scores under
  ``participant_score:{id}``.

Cache failures never propagate. Reads degrade to a miss and writes or
invalidations are logged and dropped, so a dead Redis makes the leaderboard
slower but not unavailable.

A snapshot read from the store can finish after a concurrent mutation has
invalidated the key. ``RankCache`` counts invalidations made in this process
and drops a refill whose read began before the latest one. An invalidation
from another process is not seen here, so that refill can stay stale until
the TTL expires (last writer wins).
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from rankstream.core.config.manager import ConfigManager
from rankstream.core.exceptions import CircuitBreakerError
from rankstream.core.logging.logger import get_logger
from rankstream.core.redis.service import RedisService

logger = get_logger(__name__)

# RuntimeError covers "RedisService not initialized".
CACHE_FAILURES = (
    RedisError,
    CircuitBreakerError,
    OSError,
    asyncio.TimeoutError,
    RuntimeError,
)


class RankCache:
    """Materialized top-N snapshot: ``{"entries", "total_participants", "computed_at"}``."""

    def __init__(
        self,
        config_manager: type[ConfigManager] = ConfigManager,
        redis_service: type[RedisService] = RedisService,
    ) -> None:
        self._config = config_manager
        self._redis = redis_service
        self._generation = 0

    @property
    def generation(self) -> int:
        """Invalidations issued through this instance so far."""
        return self._generation

    @property
    def key(self) -> str:
        return str(self._config.get("ranking.cache.key", "leaderboard:top"))

    @property
    def ttl_seconds(self) -> int:
        return int(self._config.get("ranking.cache.ttl_seconds", 30))

    @property
    def window_size(self) -> int:
        return int(self._config.get("ranking.cache.window_size", 100))

    async def get(self) -> Optional[Dict[str, Any]]:
        try:
            snapshot = await self._redis.get_json(self.key)
        except CACHE_FAILURES as exc:
            logger.warning(
                "Rank cache read failed; falling back to store",
                extra={"key": self.key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None

        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("entries"), list):
            return None
        return snapshot

    async def store(self, snapshot: Dict[str, Any], *, generation: Optional[int] = None) -> bool:
        """
        ``generation`` is the value read before the snapshot was computed; the
        write is skipped when an invalidation happened since.
        """
        if generation is not None and generation != self._generation:
            logger.debug(
                "Rank cache refill skipped, invalidated during read",
                extra={"key": self.key, "read_generation": generation},
            )
            return False
        try:
            written = await self._redis.set_json(self.key, snapshot, ttl=self.ttl_seconds)
            if generation is not None and generation != self._generation:
                # An invalidation raced the write; its DEL may have landed first.
                await self._redis.delete(self.key)
                return False
            return written
        except CACHE_FAILURES as exc:
            logger.warning(
                "Rank cache write failed",
                extra={"key": self.key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return False

    async def invalidate(self) -> bool:
        self._generation += 1
        try:
            await self._redis.delete(self.key)
            return True
        except CACHE_FAILURES as exc:
            logger.error(
                "Rank cache invalidation failed; entry expires by TTL",
                extra={"key": self.key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return False


class ParticipantScoreCache:
    """Per-participant current score, ``participant_score:{id}``."""

    def __init__(
        self,
        config_manager: type[ConfigManager] = ConfigManager,
        redis_service: type[RedisService] = RedisService,
    ) -> None:
        self._config = config_manager
        self._redis = redis_service

    def key_for(self, participant_id: str) -> str:
        prefix = self._config.get("ranking.participant_cache.key_prefix", "participant_score")
        return f"{prefix}:{participant_id}"

    async def get(self, participant_id: str) -> Optional[int]:
        key = self.key_for(participant_id)
        try:
            raw = await self._redis.get(key)
        except CACHE_FAILURES as exc:
            logger.warning(
                "Participant score cache read failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return None

        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding corrupt participant score entry", extra={"key": key})
            return None

    async def store(self, participant_id: str, score: int) -> None:
        key = self.key_for(participant_id)
        ttl = int(self._config.get("ranking.participant_cache.ttl_seconds", 300))
        try:
            await self._redis.set(key, str(score), ttl=ttl)
        except CACHE_FAILURES as exc:
            logger.warning(
                "Participant score cache write failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )

    async def invalidate(self, participant_id: str) -> bool:
        key = self.key_for(participant_id)
        try:
            await self._redis.delete(key)
            return True
        except CACHE_FAILURES as exc:
            logger.error(
                "Participant score cache invalidation failed",
                extra={"key": key, "error": str(exc), "error_type": type(exc).__name__},
            )
            return False
