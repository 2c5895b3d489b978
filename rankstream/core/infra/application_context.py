"""
Process lifecycle: bring infrastructure up in dependency order, tear it down
in reverse.

Startup order is ConfigManager, DatabaseService, RedisService and then the
ServiceContainer. Redis is optional unless ``require_redis`` is set; without
it the process runs with no rank cache, no rate limits and a local-only
Broadcast Hub.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable, Optional

from rankstream.core.config.config import Config
from rankstream.core.config.manager import ConfigManager
from rankstream.core.database.service import DatabaseService
from rankstream.core.event import event_bus
from rankstream.core.event.bus import EventBus
from rankstream.core.logging.logger import get_logger
from rankstream.core.redis.service import RedisService
from rankstream.core.services.container import ServiceContainer

logger = get_logger(__name__)


class ApplicationContext:
    def __init__(
        self,
        *,
        database_url: Optional[str] = None,
        redis_url: Optional[str] = None,
        require_redis: bool = False,
        bus: Optional[EventBus] = None,
    ) -> None:
        self._database_url = database_url
        self._redis_url = redis_url
        self._require_redis = require_redis
        self._bus = bus or event_bus
        self._container: Optional[ServiceContainer] = None
        self._initialized = False

    async def initialize(self) -> None:
        """
        Raises:
            RuntimeError: Already initialized, or a required component failed.
                Whatever had started is torn down first.
        """
        if self._initialized:
            raise RuntimeError("ApplicationContext already initialized")

        started = time.perf_counter()
        try:
            await self._step("config", self._start_config)
            await self._step("database", self._start_database)
            relay = await self._step("redis", self._start_redis)
            await self._step("services", lambda: self._start_services(relay))
        except Exception as exc:
            logger.critical(
                "Startup failed",
                extra={"error_type": type(exc).__name__},
                exc_info=True,
            )
            await self._teardown()
            raise RuntimeError("Failed to initialize application context") from exc

        self._initialized = True
        logger.info(
            "Application started",
            extra={
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
                "settings": Config.get_config_summary(),
            },
        )

    @staticmethod
    async def _step(name: str, action: Callable[[], Awaitable]):
        started = time.perf_counter()
        result = await action()
        logger.info(
            "Startup step done",
            extra={"step": name, "elapsed_ms": round((time.perf_counter() - started) * 1000, 2)},
        )
        return result

    async def _start_config(self) -> None:
        ConfigManager.initialize()

    async def _start_database(self) -> None:
        await DatabaseService.initialize(database_url=self._database_url)

    async def _start_redis(self) -> bool:
        try:
            await RedisService.initialize(url=self._redis_url)
        except RuntimeError as exc:
            if self._require_redis:
                raise
            logger.warning(
                "Redis unavailable, continuing without cache, rate limits or relay",
                extra={"error": str(exc)},
            )
            return False
        return True

    async def _start_services(self, relay: bool) -> None:
        self._container = ServiceContainer(
            config_manager=ConfigManager,
            event_bus=self._bus,
            logger=get_logger("rankstream.core.services.container"),
            enable_relay=relay,
        )
        await self._container.initialize()

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        await self._teardown()
        self._initialized = False
        logger.info("Application stopped")

    async def _teardown(self) -> None:
        # Every step runs even when an earlier one fails.
        for name, step in (
            ("services", self._stop_services),
            ("redis", RedisService.shutdown),
            ("database", DatabaseService.shutdown),
        ):
            try:
                await step()
            except Exception:
                logger.error("Shutdown step failed", extra={"step": name}, exc_info=True)

    async def _stop_services(self) -> None:
        if self._container is not None:
            await self._container.shutdown()
            self._container = None

    @property
    def service_container(self) -> ServiceContainer:
        if not self._initialized or self._container is None:
            raise RuntimeError("ApplicationContext not initialized")
        return self._container

    @property
    def is_initialized(self) -> bool:
        return self._initialized
