"""
Database metrics for Rankstream.

In-process counters for engine lifecycle, transactions and health checks.
DatabaseService calls the classmethods below; the /health endpoint reads
`snapshot()`. Every recording also emits a DEBUG log line so the same data
is available to log aggregation.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict

from rankstream.core.logging.logger import get_logger

logger = get_logger(__name__)


class DatabaseMetrics:
    """Static facade for database metrics."""

    _counters: Counter = Counter()
    _rollback_errors: Counter = Counter()
    _total_commit_ms: float = 0.0
    _last_health_ok: bool = False

    @classmethod
    def _record(cls, event: str, **extra: Any) -> None:
        cls._counters[event] += 1
        logger.debug(f"[DatabaseMetrics] {event}", extra=extra or None)

    @classmethod
    def record_engine_initialized(cls, *, url_scheme: str, pool_class: str) -> None:
        cls._record("engine_initialized", url_scheme=url_scheme, pool_class=pool_class)

    @classmethod
    def record_engine_initialization_failed(cls, *, config_error: bool) -> None:
        cls._record("engine_initialization_failed", config_error=config_error)

    @classmethod
    def record_engine_shutdown(cls) -> None:
        cls._record("engine_shutdown")

    @classmethod
    def record_health_check(cls, *, success: bool, duration_ms: float) -> None:
        cls._last_health_ok = success
        cls._record(
            "health_check_ok" if success else "health_check_failed",
            duration_ms=round(duration_ms, 2),
        )

    @classmethod
    def record_transaction_started(cls) -> None:
        cls._record("transaction_started")

    @classmethod
    def record_transaction_committed(cls, *, duration_ms: float) -> None:
        cls._total_commit_ms += duration_ms
        cls._record("transaction_committed", duration_ms=round(duration_ms, 2))

    @classmethod
    def record_transaction_rolled_back(cls, *, duration_ms: float, error_type: str) -> None:
        cls._rollback_errors[error_type] += 1
        cls._record(
            "transaction_rolled_back",
            duration_ms=round(duration_ms, 2),
            error_type=error_type,
        )

    @classmethod
    def snapshot(cls) -> Dict[str, Any]:
        committed = cls._counters["transaction_committed"]
        return {
            "transactions_started": cls._counters["transaction_started"],
            "transactions_committed": committed,
            "transactions_rolled_back": cls._counters["transaction_rolled_back"],
            "rollback_errors": dict(cls._rollback_errors),
            "avg_commit_ms": round(cls._total_commit_ms / committed, 2) if committed else 0.0,
            "health_checks_failed": cls._counters["health_check_failed"],
            "last_health_ok": cls._last_health_ok,
        }

    @classmethod
    def reset(cls) -> None:
        cls._counters = Counter()
        cls._rollback_errors = Counter()
        cls._total_commit_ms = 0.0
        cls._last_health_ok = False
