"""
FastAPI application factory.

The ApplicationContext is created per app and driven by the lifespan hook:
startup initializes config, database, Redis and the service container; the
hub's relay and heartbeat tasks run for the life of the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from rankstream.core.config.config import Config
from rankstream.core.http.errors import register_exception_handlers
from rankstream.core.http.health import router as health_router
from rankstream.core.http.middleware import RequestContextMiddleware
from rankstream.core.infra.application_context import ApplicationContext
from rankstream.core.logging.logger import get_logger
from rankstream.modules.broadcast.routes import router as live_router
from rankstream.modules.ranking.routes import router as leaderboard_router
from rankstream.modules.scores.routes import router as scores_router

logger = get_logger(__name__)


def create_app(context: Optional[ApplicationContext] = None) -> FastAPI:
    """
    Build the HTTP/WebSocket application.

    Tests pass their own ApplicationContext (pointing at testcontainers);
    production uses one built from Config.
    """
    context = context or ApplicationContext()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not context.is_initialized:
            await context.initialize()
        logger.info(
            "Rankstream HTTP surface ready",
            extra={"environment": Config.ENVIRONMENT, "version": Config.SERVICE_VERSION},
        )
        try:
            yield
        finally:
            await context.shutdown()

    app = FastAPI(
        title=Config.SERVICE_NAME,
        version=Config.SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(scores_router)
    app.include_router(leaderboard_router)
    app.include_router(live_router)
    return app
