"""
Caller-facing errors.

Each maps to a 4xx response with a stable ``error_code``; on the live
socket an ``AuthorizationError`` becomes a policy-violation close. These are
expected outcomes and log at INFO or below.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from rankstream.core.exceptions import ErrorSeverity, RankstreamError


class RankstreamDomainException(RankstreamError):
    DEFAULT_SEVERITY = ErrorSeverity.INFO


class ValidationError(RankstreamDomainException):
    """
    Input rejected before any state was touched.

    ``error_code`` is ``VALIDATION_<FIELD>`` so clients can branch on the
    offending field without parsing the message.
    """

    def __init__(self, field: str, message: str, value: Any = None) -> None:
        self.field = field
        self.validation_message = message
        details: Dict[str, Any] = {"field": field}
        if value is not None:
            details["value"] = value
        super().__init__(
            f"Invalid {field}: {message}",
            details,
            error_code=f"VALIDATION_{field.upper()}",
        )


class AuthorizationError(RankstreamDomainException):
    """
    No credential (``reason="missing"``, code UNAUTHORIZED) or one that
    failed verification (any other reason, code INVALID_TOKEN).
    """

    def __init__(self, reason: str = "missing", message: Optional[str] = None) -> None:
        self.reason = reason
        if reason == "missing":
            code, fallback = "UNAUTHORIZED", "Authentication required"
        else:
            code, fallback = "INVALID_TOKEN", "Invalid token"
        super().__init__(message or fallback, {"reason": reason}, error_code=code)


class NotFoundError(RankstreamDomainException):
    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = f": {identifier}" if identifier is not None else ""
        super().__init__(
            f"{resource_type} not found{suffix}",
            {"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class RateLimitError(RankstreamDomainException):
    """``scope`` is "participant" or "origin"; ``retry_after`` is in seconds."""

    DEFAULT_SEVERITY = ErrorSeverity.DEBUG
    DEFAULT_RETRYABLE = True

    def __init__(self, scope: str, retry_after: float) -> None:
        self.scope = scope
        self.retry_after = retry_after
        super().__init__(
            f"Too many requests for {scope}, retry in {retry_after:.0f}s",
            {"scope": scope, "retry_after": retry_after},
            error_code="RATE_LIMIT_EXCEEDED",
        )
