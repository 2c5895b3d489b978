"""
Rankstream logging.

Queue-backed structured logging with per-request and per-connection context.
"""

from rankstream.core.logging.logger import (
    LogContext,
    LogSettings,
    get_logger,
    get_logging_health,
    set_log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "get_logging_health",
    "LogContext",
    "set_log_context",
    "LogSettings",
]
