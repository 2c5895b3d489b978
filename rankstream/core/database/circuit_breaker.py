"""
Fail-fast guard for a storage dependency.

After ``failure_threshold`` consecutive connection-level failures the
breaker opens and refuses calls outright for ``recovery_timeout`` seconds.
It then lets a single probe through (half-open): success closes it again,
failure re-opens it for another full timeout. ``DatabaseService`` and
``RedisResilience`` each own one.

Defaults come from CIRCUIT_BREAKER_FAILURE_THRESHOLD and
CIRCUIT_BREAKER_RECOVERY_TIMEOUT.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Dict, Optional

from rankstream.core.config.config import Config
from rankstream.core.logging.logger import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[float] = None,
    ) -> None:
        self.name = name
        self.failure_threshold = int(failure_threshold or Config.CIRCUIT_BREAKER_FAILURE_THRESHOLD)
        self.recovery_timeout = float(
            Config.CIRCUIT_BREAKER_RECOVERY_TIMEOUT if recovery_timeout is None else recovery_timeout
        )
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._rejected = 0
        self._trips = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def retry_after(self) -> float:
        """Seconds until a probe may run; 0 unless OPEN."""
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.recovery_timeout - time.monotonic())

    async def allow_request(self) -> bool:
        async with self._lock:
            if self._state is CircuitState.OPEN and self.retry_after() == 0:
                self._move_to(CircuitState.HALF_OPEN)
                self._probe_in_flight = False

            if self._state is CircuitState.CLOSED:
                return True
            if self._state is CircuitState.HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                return True

            self._rejected += 1
            return False

    async def record_success(self) -> None:
        async with self._lock:
            self._failures = 0
            if self._state is not CircuitState.CLOSED:
                self._move_to(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        async with self._lock:
            self._failures += 1
            logger.warning(
                "Storage failure counted",
                extra={"breaker": self.name, "consecutive_failures": self._failures},
            )
            if self._state is CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                if self._state is not CircuitState.OPEN:
                    self._trips += 1
                self._opened_at = time.monotonic()
                self._move_to(CircuitState.OPEN)

    async def reset(self) -> None:
        async with self._lock:
            self._failures = 0
            self._opened_at = None
            self._probe_in_flight = False
            self._move_to(CircuitState.CLOSED)

    def _move_to(self, state: CircuitState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        level = logger.error if state is CircuitState.OPEN else logger.info
        level(
            "Circuit %s -> %s",
            previous.value,
            state.value,
            extra={"breaker": self.name, "retry_after": round(self.retry_after(), 1)},
        )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self._state.value,
            "consecutive_failures": self._failures,
            "failure_threshold": self.failure_threshold,
            "times_opened": self._trips,
            "rejected_requests": self._rejected,
            "retry_after": round(self.retry_after(), 2),
        }
