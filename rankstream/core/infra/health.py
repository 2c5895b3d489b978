"""
Unified Health Check Service for Rankstream.

Purpose
-------
Aggregate the health of the database, Redis, the broadcast relay and the
logging pipeline into one report for load balancers and dashboards.

Health Status Hierarchy
-----------------------
- **HEALTHY**: database and Redis respond, relay subscribed
- **DEGRADED**: database responds but Redis or the relay does not; scores
  still apply, fan-out is limited to this process
- **UNHEALTHY**: database unreachable or the check timed out

Report Structure
----------------
{
    "status": "HEALTHY" | "DEGRADED" | "UNHEALTHY",
    "timestamp": float,
    "duration_ms": float,
    "components": {"database": {...}, "redis": {...}, "relay": {...},
                   "logging": {...}},
    "connections": {"total_connections", "unique_participants",
                    "max_connections"},
    "errors": List[str]
}

The check never raises; component failures are reported in the body.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from rankstream.core.config.config import Config
from rankstream.core.config.manager import ConfigManager
from rankstream.core.database.metrics import DatabaseMetrics
from rankstream.core.database.service import DatabaseService
from rankstream.core.logging.logger import get_logger, get_logging_health
from rankstream.core.redis.service import RedisService

if TYPE_CHECKING:
    from rankstream.modules.broadcast.hub import BroadcastHub

logger = get_logger(__name__)


class HealthStatus(Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    UNHEALTHY = "UNHEALTHY"


class UnifiedHealthCheck:
    """Stateless aggregation of component health."""

    DEFAULT_TIMEOUT_SECONDS: float = 5.0

    @classmethod
    def _timeout(cls) -> float:
        value = ConfigManager.get("health_check_timeout_seconds", cls.DEFAULT_TIMEOUT_SECONDS)
        return float(value) if isinstance(value, (int, float)) else cls.DEFAULT_TIMEOUT_SECONDS

    @classmethod
    async def check(
        cls,
        hub: Optional[BroadcastHub] = None,
        timeout_seconds: Optional[float] = None,
    ) -> Dict[str, Any]:
        start_time = time.time()
        timeout_seconds = timeout_seconds or cls._timeout()

        try:
            database_ok, redis_ok = await asyncio.wait_for(
                asyncio.gather(DatabaseService.health_check(), RedisService.health_check()),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Health check timed out", extra={"timeout_seconds": timeout_seconds})
            return {
                "status": HealthStatus.UNHEALTHY.value,
                "timestamp": time.time(),
                "duration_ms": round((time.time() - start_time) * 1000, 2),
                "components": {},
                "connections": hub.registry.stats() if hub is not None else None,
                "errors": [f"Health check timed out after {timeout_seconds}s"],
            }

        errors: List[str] = []
        components: Dict[str, Any] = {
            "database": {
                "available": database_ok,
                "circuit_breaker": DatabaseService.get_circuit_breaker_metrics(),
                "pool": DatabaseService.get_pool_metrics(),
                "transactions": DatabaseMetrics.snapshot(),
            },
            "redis": {
                "available": redis_ok,
                **RedisService.get_status(),
            },
            "logging": asdict(get_logging_health()),
            "config": {**ConfigManager.health_snapshot(), "environment": Config.get_load_report()},
        }

        relay_ok = False
        if hub is not None:
            relay = hub.relay.get_status()
            relay_ok = bool(relay["connected"])
            components["relay"] = relay
        else:
            components["relay"] = {"connected": False, "running": False}

        if not database_ok:
            errors.append("database: unreachable")
        if not redis_ok:
            errors.append("redis: unreachable")
        if not relay_ok:
            errors.append("relay: not subscribed")

        if not database_ok:
            status = HealthStatus.UNHEALTHY
        elif not redis_ok or not relay_ok:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        report = {
            "status": status.value,
            "timestamp": time.time(),
            "duration_ms": round((time.time() - start_time) * 1000, 2),
            "components": components,
            "connections": hub.registry.stats() if hub is not None else None,
            "errors": errors,
        }

        if status is not HealthStatus.HEALTHY:
            logger.warning(
                f"Health check {status.value}",
                extra={"errors": errors, "duration_ms": report["duration_ms"]},
            )
        return report
