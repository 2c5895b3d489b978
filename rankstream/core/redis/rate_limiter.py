"""
Fixed-window request budgets shared across processes.

One counter per scope and window (``ratelimit:fw:<scope>:<window>``):
``INCRBY`` charges the request and the first hit of a window sets its
``EXPIRE``, so stale windows clean themselves up.

If Redis cannot be reached, ``core.redis.rate_limiter.fallback_mode``
decides: ``allow`` (the default) lets the request through, ``deny`` turns
it away for a full period.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from redis.exceptions import RedisError

from rankstream.core.config import ConfigManager
from rankstream.core.exceptions import CircuitBreakerError
from rankstream.core.logging.logger import get_logger
from rankstream.core.redis.metrics import RedisMetrics

if TYPE_CHECKING:
    from rankstream.core.redis.service import RedisService

logger = get_logger(__name__)

_UNREACHABLE = (RedisError, OSError, asyncio.TimeoutError, CircuitBreakerError)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    rate: int
    retry_after: int


def window_key(scope: str, period: int, now: Optional[float] = None) -> str:
    window = int((time.time() if now is None else now) // period)
    return f"ratelimit:fw:{scope}:{window}"


def seconds_left(period: int, now: Optional[float] = None) -> int:
    elapsed = int(time.time() if now is None else now) % period
    return max(1, period - elapsed)


class RedisRateLimiter:
    def __init__(self, redis_service: type[RedisService]) -> None:
        self._redis_service = redis_service
        mode = str(ConfigManager.get("core.redis.rate_limiter.fallback_mode", "allow")).lower()
        if mode not in ("allow", "deny"):
            logger.warning("Unknown rate limiter fallback_mode %r, using allow", mode)
            mode = "allow"
        self._fallback_mode = mode
        self._period = int(ConfigManager.get("rate_limits.period_seconds", 60))

    async def check(
        self,
        key: str,
        rate: int,
        period_seconds: Optional[int] = None,
        tokens: int = 1,
    ) -> RateLimitDecision:
        """
        Charge ``tokens`` against ``key``'s current window. Never raises.
        """
        period = max(1, period_seconds or self._period)
        counter = window_key(key, period)
        started = time.monotonic()

        async def charge() -> int:
            client = self._redis_service.client()
            used = await client.incrby(counter, tokens)
            if used == tokens:
                await client.expire(counter, period)
            return int(used)

        try:
            # Single attempt: a retried INCRBY would charge twice.
            used = await self._redis_service.get_resilience().execute(
                operation=charge, operation_name="RATELIMIT", max_attempts=1
            )
        except _UNREACHABLE as exc:
            self._observe(started, ok=False)
            allowed = self._fallback_mode == "allow"
            logger.warning(
                "Rate limiter unavailable, falling back",
                extra={"key": key, "allowed": allowed, "error_type": type(exc).__name__},
            )
            return RateLimitDecision(allowed, 0, rate, 0 if allowed else period)

        self._observe(started, ok=True)
        if used <= rate:
            return RateLimitDecision(True, used, rate, 0)

        retry_after = seconds_left(period)
        logger.info(
            "Rate limit exceeded",
            extra={"key": key, "count": used, "rate": rate, "retry_after": retry_after},
        )
        return RateLimitDecision(False, used, rate, retry_after)

    @staticmethod
    def _observe(started: float, ok: bool) -> None:
        RedisMetrics.record_operation("RATELIMIT", (time.monotonic() - started) * 1000, ok)

    def get_status(self) -> dict[str, Any]:
        return {"algorithm": "fixed_window", "fallback_mode": self._fallback_mode}
