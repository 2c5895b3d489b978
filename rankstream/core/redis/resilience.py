"""
Breaker and bounded retry around Redis commands.

Connection-class failures (refused, reset, timed out) are retried with
capped exponential backoff and feed the breaker; once it opens, calls fail
immediately with ``CircuitBreakerError``. Any other error propagates on the
first attempt.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, Optional

from redis.exceptions import ConnectionError as RedisConnError
from redis.exceptions import TimeoutError as RedisTimeoutError

from rankstream.core.config.manager import ConfigManager
from rankstream.core.database.circuit_breaker import CircuitBreaker, CircuitState
from rankstream.core.exceptions import CircuitBreakerError
from rankstream.core.logging.logger import get_logger

logger = get_logger(__name__)

RETRYABLE = (RedisConnError, RedisTimeoutError, asyncio.TimeoutError, OSError)


class RedisResilience:
    def __init__(self) -> None:
        settings = "core.redis.resilience."
        self._breaker = CircuitBreaker(
            "redis",
            failure_threshold=ConfigManager.get(settings + "circuit_failure_threshold", 5),
            recovery_timeout=ConfigManager.get(settings + "circuit_recovery_seconds", 30),
        )
        self._retries = int(ConfigManager.get(settings + "retry_attempts", 2))
        self._first_delay = float(ConfigManager.get(settings + "retry_base_delay_ms", 50)) / 1000
        self._delay_cap = float(ConfigManager.get(settings + "retry_max_delay_ms", 500)) / 1000

    @property
    def state(self) -> CircuitState:
        return self._breaker.state

    def _backoff(self, attempt: int) -> float:
        delay = min(self._first_delay * 2 ** (attempt - 1), self._delay_cap)
        return delay * random.uniform(0.9, 1.1)

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        operation_name: str,
        max_attempts: Optional[int] = None,
    ) -> Any:
        """
        Await ``operation()`` with up to ``retry_attempts`` extra tries.

        Raises:
            CircuitBreakerError: The breaker is open.
        """
        if not await self._breaker.allow_request():
            raise CircuitBreakerError(
                "redis", self._breaker.consecutive_failures, self._breaker.retry_after()
            )

        attempts = max_attempts or self._retries + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await operation()
            except RETRYABLE as exc:
                await self._breaker.record_failure()
                if attempt >= attempts or self._breaker.state is CircuitState.OPEN:
                    logger.error(
                        "Redis command gave up",
                        extra={
                            "operation": operation_name,
                            "attempts": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise
                delay = self._backoff(attempt)
                logger.warning(
                    "Redis command failed, retrying",
                    extra={"operation": operation_name, "attempt": attempt, "delay_s": round(delay, 3)},
                )
                await asyncio.sleep(delay)
            else:
                await self._breaker.record_success()
                return result

    def get_status(self) -> Dict[str, Any]:
        return {**self._breaker.snapshot(), "retry_attempts": self._retries}
