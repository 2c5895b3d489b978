"""
Infrastructure exceptions for Rankstream.

Two families share the ``RankstreamError`` base: infrastructure failures
defined here (storage unreachable, open circuits, broken invariants) and
caller-facing domain errors in ``rankstream.modules.shared.exceptions``.

Every instance carries ``message``, ``details``, ``severity``,
``is_retryable`` and a stable ``error_code``. The HTTP layer answers
``TransientStorageError`` and ``CircuitBreakerError`` with 503 and anything
else from this module with an opaque 500; ``details`` never reach clients.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class RankstreamError(Exception):
    """Common base; subclasses set DEFAULT_SEVERITY / DEFAULT_RETRYABLE."""

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        error_code: Optional[str] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.error_code = error_code or type(self).__name__
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} {self.details}"


class RankstreamInfrastructureException(RankstreamError):
    """Engineering-level failure; never the caller's fault."""


class TransientStorageError(RankstreamInfrastructureException):
    """
    The authoritative store is unreachable or timed out.

    When raised from a mutation the transaction has already rolled back, so
    nothing is visible and the caller may retry.

    Args:
        operation: What was being attempted, e.g. "apply_delta"
        reason: "timeout", "connection" or similar
        original_error: Underlying driver exception, if any
        retry_after: Optional hint in seconds
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        reason: str,
        original_error: Optional[Exception] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        self.operation = operation
        self.reason = reason
        self.original_error = original_error
        self.retry_after = retry_after
        super().__init__(
            f"Storage unavailable during {operation}: {reason}",
            {
                "operation": operation,
                "reason": reason,
                "cause": type(original_error).__name__ if original_error else None,
            },
            error_code="STORAGE_UNAVAILABLE",
        )


class CircuitBreakerError(RankstreamInfrastructureException):
    """A breaker is open; calls are refused until ``retry_after`` elapses."""

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(self, service: str, failure_count: int, retry_after: float) -> None:
        self.service = service
        self.failure_count = failure_count
        self.retry_after = retry_after
        super().__init__(
            f"Circuit open for {service} after {failure_count} failures",
            {"service": service, "failure_count": failure_count, "retry_after": retry_after},
            error_code="CIRCUIT_BREAKER_OPEN",
        )


class ConsistencyViolation(RankstreamInfrastructureException):
    """
    Stored state contradicts itself, e.g. a record whose new score is not
    previous + increment. Indicates a bug; never retried.
    """

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, check: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.check = check
        super().__init__(
            f"Consistency check failed: {check}",
            {"check": check, **(details or {})},
            error_code="CONSISTENCY_VIOLATION",
        )


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, RankstreamError):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: BaseException) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
