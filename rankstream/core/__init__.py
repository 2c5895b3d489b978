"""
Infrastructure for Rankstream: config, storage, Redis, logging and the
infrastructure exception family.

HTTP wiring and ApplicationContext live in ``rankstream.core.http`` and
``rankstream.core.infra``; they import the feature modules, which import
from here, so they are not re-exported.
"""

from rankstream.core.config import Config, ConfigManager
from rankstream.core.database import DatabaseService
from rankstream.core.exceptions import (
    CircuitBreakerError,
    ConsistencyViolation,
    RankstreamInfrastructureException,
    TransientStorageError,
)
from rankstream.core.logging.logger import LogContext, get_logger
from rankstream.core.redis import RedisService

__all__ = [
    "CircuitBreakerError",
    "Config",
    "ConfigManager",
    "ConsistencyViolation",
    "DatabaseService",
    "LogContext",
    "RankstreamInfrastructureException",
    "RedisService",
    "TransientStorageError",
    "get_logger",
]
