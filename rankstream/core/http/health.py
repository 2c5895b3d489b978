"""GET /health"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from rankstream.core.infra.health import HealthStatus, UnifiedHealthCheck

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    context = request.app.state.context
    hub = context.service_container.broadcast if context.is_initialized else None

    report = await UnifiedHealthCheck.check(hub=hub)
    status_code = 503 if report["status"] == HealthStatus.UNHEALTHY.value else 200
    return JSONResponse(content=report, status_code=status_code)
