"""
Wires the domain services together.

Every service takes ``(config_manager, event_bus, logger)`` followed by its
collaborators as keywords. Construction order follows the dependencies:
caches, then RankingService, ScoreService and finally BroadcastHub, whose
background tasks are started here and stopped on shutdown.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Optional, TypeVar

from rankstream.core.config.manager import ConfigManager
from rankstream.core.logging.logger import get_logger
from rankstream.modules.broadcast import BroadcastHub
from rankstream.modules.identity import IdentityVerifier
from rankstream.modules.ranking import ParticipantScoreCache, RankCache, RankingService
from rankstream.modules.scores import ScoreService

if TYPE_CHECKING:
    from logging import Logger

    from rankstream.core.event.bus import EventBus

ServiceT = TypeVar("ServiceT")


class ServiceContainer:
    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: EventBus,
        logger: Logger,
        *,
        enable_relay: bool = True,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._enable_relay = enable_relay

        self._identity: Optional[IdentityVerifier] = None
        self._ranking: Optional[RankingService] = None
        self._scores: Optional[ScoreService] = None
        self._broadcast: Optional[BroadcastHub] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Needs ConfigManager, DatabaseService and (optionally) RedisService up."""
        if self._initialized:
            return

        started = time.perf_counter()
        rank_cache = RankCache(self._config_manager)
        score_cache = ParticipantScoreCache(self._config_manager)

        self._identity = IdentityVerifier()
        self._ranking = self._build(RankingService, rank_cache=rank_cache)
        self._scores = self._build(ScoreService, rank_cache=rank_cache, score_cache=score_cache)
        self._broadcast = self._build(BroadcastHub, ranking_service=self._ranking)
        await self._broadcast.start(use_relay=self._enable_relay)

        self._initialized = True
        self._logger.info(
            "Services ready",
            extra={
                "relay_enabled": self._enable_relay,
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )

    def _build(self, cls: type[ServiceT], **collaborators: Any) -> ServiceT:
        return cls(
            config_manager=self._config_manager,
            event_bus=self._event_bus,
            logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
            **collaborators,
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        if self._broadcast is not None:
            await self._broadcast.stop()
        # Detached LOW-priority listeners may still be delivering.
        await self._event_bus.drain()
        self._initialized = False
        self._logger.info("Services stopped")

    def _require(self, service: Optional[ServiceT]) -> ServiceT:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized")
        return service

    @property
    def identity(self) -> IdentityVerifier:
        return self._require(self._identity)

    @property
    def ranking(self) -> RankingService:
        return self._require(self._ranking)

    @property
    def scores(self) -> ScoreService:
        return self._require(self._scores)

    @property
    def broadcast(self) -> BroadcastHub:
        return self._require(self._broadcast)

    @property
    def is_initialized(self) -> bool:
        return self._initialized
