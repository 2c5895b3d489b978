"""
Redis infrastructure for Rankstream.

Exports
-------
RedisService      - pooled client, KV/JSON/PUBLISH operations, health
RedisResilience   - circuit breaker plus retry wrapper for every command
RedisMetrics      - per-command latency and health check history
RedisRateLimiter  - fixed-window distributed rate limiting
RateLimitDecision - result of a limiter check

Example Usage
-------------
>>> await RedisService.initialize()
>>> await RedisService.set_json("leaderboard:top", snapshot, ttl=30)
>>> await RedisService.publish("leaderboard:updates", {"participant": "p-1"})
>>> await RedisService.shutdown()
"""

from __future__ import annotations

from rankstream.core.redis.metrics import RedisMetrics
from rankstream.core.redis.rate_limiter import RateLimitDecision, RedisRateLimiter
from rankstream.core.redis.resilience import RedisResilience
from rankstream.core.redis.service import RedisService

__all__ = [
    "RedisService",
    "RedisResilience",
    "RedisMetrics",
    "RedisRateLimiter",
    "RateLimitDecision",
]
