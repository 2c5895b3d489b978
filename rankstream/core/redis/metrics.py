"""
Process-wide Redis command statistics.

``RedisService`` and the rate limiter report every command here; the health
endpoint reads the summary. Latency percentiles come from the last
``SAMPLE_SIZE`` calls of each command.
"""

from __future__ import annotations

import time
from collections import deque
from statistics import quantiles
from threading import Lock
from typing import Any, Deque, Dict

from rankstream.core.config.manager import ConfigManager
from rankstream.core.logging.logger import get_logger

logger = get_logger(__name__)

SAMPLE_SIZE = 1000


class _CommandStats:
    __slots__ = ("calls", "failures", "slowest_ms", "samples")

    def __init__(self) -> None:
        self.calls = 0
        self.failures = 0
        self.slowest_ms = 0.0
        self.samples: Deque[float] = deque(maxlen=SAMPLE_SIZE)

    def as_dict(self) -> Dict[str, Any]:
        if len(self.samples) >= 2:
            cuts = quantiles(self.samples, n=100, method="inclusive")
            p50, p95, p99 = cuts[49], cuts[94], cuts[98]
        else:
            p50 = p95 = p99 = self.samples[0] if self.samples else 0.0
        return {
            "calls": self.calls,
            "failures": self.failures,
            "slowest_ms": round(self.slowest_ms, 2),
            "p50_ms": round(p50, 2),
            "p95_ms": round(p95, 2),
            "p99_ms": round(p99, 2),
        }


class RedisMetrics:
    _commands: Dict[str, _CommandStats] = {}
    _pings: Deque[bool] = deque(maxlen=100)
    _since: float = time.monotonic()
    _lock = Lock()

    @classmethod
    def record_operation(cls, operation: str, latency_ms: float, success: bool = True) -> None:
        with cls._lock:
            stats = cls._commands.setdefault(operation, _CommandStats())
            stats.calls += 1
            stats.failures += 0 if success else 1
            stats.slowest_ms = max(stats.slowest_ms, latency_ms)
            stats.samples.append(latency_ms)

        threshold = ConfigManager.get("core.redis.metrics.slow_operation_ms", 100)
        if latency_ms > threshold:
            logger.warning(
                "Slow Redis command",
                extra={"operation": operation, "latency_ms": round(latency_ms, 2)},
            )

    @classmethod
    def record_health_check(cls, success: bool, latency_ms: float) -> None:
        with cls._lock:
            cls._pings.append(success)

    @classmethod
    def get_summary(cls) -> Dict[str, Any]:
        with cls._lock:
            return {
                "uptime_seconds": round(time.monotonic() - cls._since, 1),
                "commands": {name: stats.as_dict() for name, stats in cls._commands.items()},
                "recent_pings": {"total": len(cls._pings), "failed": cls._pings.count(False)},
            }

