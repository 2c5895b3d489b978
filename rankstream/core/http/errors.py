"""
FastAPI exception handlers.

Every failure leaves the service as the failure envelope produced by
ErrorResponseService. Domain errors are logged at INFO, transient storage
errors at WARNING, and anything unexpected at ERROR with a traceback.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rankstream.core.exceptions import (
    RankstreamError,
    RankstreamInfrastructureException,
    get_error_severity,
    should_alert,
)
from rankstream.core.logging.logger import get_logger
from rankstream.core.services.error_response_service import ErrorResponseService
from rankstream.modules.shared.exceptions import RankstreamDomainException, ValidationError

logger = get_logger(__name__)

_formatter = ErrorResponseService()


def _render(exc: Exception) -> JSONResponse:
    response = _formatter.format_error(exc)
    return JSONResponse(
        status_code=response.status_code,
        content=response.body,
        headers=response.headers or None,
    )


async def handle_domain_error(request: Request, exc: RankstreamDomainException) -> JSONResponse:
    logger.info(
        "Request rejected",
        extra={
            "path": request.url.path,
            "error_code": exc.error_code,
            "error": exc.message,
        },
    )
    return _render(exc)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Body/query schema violations use the same envelope as domain validation.
    first = exc.errors()[0] if exc.errors() else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = location[-1] if location else "request"
    return await handle_domain_error(
        request, ValidationError(field, str(first.get("msg", "Invalid request")))
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = "NOT_FOUND" if exc.status_code == 404 else f"HTTP_{exc.status_code}"
    message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": {"code": code, "message": message}},
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    severity = get_error_severity(exc)
    extra = {
        "path": request.url.path,
        "method": request.method,
        "error": exc.to_dict() if isinstance(exc, RankstreamError) else str(exc),
        "error_type": type(exc).__name__,
        "severity": severity.value,
    }
    if should_alert(exc):
        logger.error("Unhandled error during request", extra=extra, exc_info=exc)
    else:
        logger.warning("Request failed on a transient error", extra=extra)
    return _render(exc)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RankstreamDomainException, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RankstreamInfrastructureException, handle_unexpected_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
