"""
Error Response Service for Rankstream.

Purpose
-------
Centralized formatting of domain and infrastructure exceptions into HTTP
status codes and the failure envelope::

    {"success": false, "error": {"code", "message", "details"?, "retry_after"?}}

Responsibilities
----------------
- Map exception types to status codes
- Hide internal detail of unexpected errors behind a generic message
- Provide the ``Retry-After`` header for throttled and transient failures

Non-Responsibilities
--------------------
- Logging (handled by the HTTP exception handlers)
- Exception creation or domain logic
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from rankstream.core.exceptions import (
    CircuitBreakerError,
    TransientStorageError,
)
from rankstream.modules.shared.exceptions import (
    AuthorizationError,
    NotFoundError,
    RankstreamDomainException,
    RateLimitError,
    ValidationError,
)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred."
STORAGE_ERROR_MESSAGE = "Service temporarily unavailable. Please retry shortly."

_DOMAIN_STATUS = (
    (ValidationError, 400),
    (AuthorizationError, 401),
    (NotFoundError, 404),
    (RateLimitError, 429),
)


@dataclass
class ErrorResponse:
    status_code: int
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)


class ErrorResponseService:
    """Exception -> (status, envelope, headers)."""

    def format_error(self, error: Exception) -> ErrorResponse:
        if isinstance(error, RankstreamDomainException):
            return self._format_domain_error(error)
        if isinstance(error, (TransientStorageError, CircuitBreakerError)):
            return self._envelope(
                503,
                "STORAGE_UNAVAILABLE",
                STORAGE_ERROR_MESSAGE,
                retry_after=error.retry_after,
            )
        return self._envelope(500, "INTERNAL_ERROR", GENERIC_ERROR_MESSAGE)

    def _format_domain_error(self, error: RankstreamDomainException) -> ErrorResponse:
        status_code = 400
        for exc_type, code in _DOMAIN_STATUS:
            if isinstance(error, exc_type):
                status_code = code
                break

        details: Optional[Dict[str, Any]] = None
        if isinstance(error, ValidationError):
            details = {"field": error.field, "message": error.validation_message}

        retry_after = error.retry_after if isinstance(error, RateLimitError) else None
        return self._envelope(
            status_code,
            error.error_code,
            error.message,
            details=details,
            retry_after=retry_after,
        )

    @staticmethod
    def _envelope(
        status_code: int,
        code: str,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ) -> ErrorResponse:
        error: Dict[str, Any] = {"code": code, "message": message}
        if details:
            error["details"] = details

        headers: Dict[str, str] = {}
        if retry_after:
            seconds = max(1, math.ceil(retry_after))
            error["retry_after"] = seconds
            headers["Retry-After"] = str(seconds)

        return ErrorResponse(
            status_code=status_code,
            body={"success": False, "error": error},
            headers=headers,
        )


def success_envelope(data: Any, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "data": data}
    if message is not None:
        body["message"] = message
    return body
