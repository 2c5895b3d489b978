"""
Database subsystem for Rankstream.

Async SQLAlchemy engine, session and transaction management, circuit
breaker and metrics, plus the ORM base classes used by the models.
"""

from rankstream.core.database.base import Base, IdMixin, TimestampMixin, utc_now
from rankstream.core.database.circuit_breaker import CircuitBreaker, CircuitState
from rankstream.core.database.metrics import DatabaseMetrics
from rankstream.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
    is_connection_failure,
    storage_errors,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    "CircuitBreaker",
    "CircuitState",
    "DatabaseMetrics",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
    "is_connection_failure",
    "storage_errors",
]
