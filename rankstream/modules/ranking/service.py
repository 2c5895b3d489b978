"""
Ranking Service
===============

Purpose
-------
Answers rank questions: a participant's ordinal rank, paged leaderboard
listings and top-N membership.

Domain
------
- ``get_rank``: ``1 + count(score > participant's score)``; a participant
  without a score row ranks as score 0.
- ``get_top_n``: offset 0 is served from the Rank Cache snapshot when
  present; a miss reads the store and repopulates the snapshot. Any other
  offset always reads the store and never touches the cache.
- ``is_in_top_n``: evaluated against the store, never the cache, so a
  check immediately after a mutation cannot see a stale window.

Cache failures degrade to store reads. Store unavailability surfaces as
``TransientStorageError``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from rankstream.core.database import DatabaseService, storage_errors
from rankstream.core.logging.logger import get_logger
from rankstream.database.models import Participant, ScoreRecord
from rankstream.modules.identity.repository import ParticipantRepository
from rankstream.modules.ranking.cache import RankCache
from rankstream.modules.ranking.repository import RankingRepository
from rankstream.modules.shared.base_service import BaseService
from rankstream.modules.shared.exceptions import NotFoundError, ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from rankstream.core.config.manager import ConfigManager
    from rankstream.core.event.bus import EventBus


class RankingService(BaseService):
    """
    Rank Query Engine.

    Public Methods
    --------------
    - get_rank() -> 1-based competition rank
    - get_top_n() -> ordered page with total count and computation time
    - is_in_top_n() -> store-evaluated membership in the top-N window
    - get_leaderboard() -> listing plus optional caller rank (HTTP shape)
    """

    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: EventBus,
        logger: Logger,
        rank_cache: RankCache,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._cache = rank_cache
        self._ranking_repo = RankingRepository(
            model_class=ScoreRecord,
            logger=get_logger(f"{__name__}.RankingRepository"),
        )
        self._participant_repo = ParticipantRepository(
            model_class=Participant,
            logger=get_logger(f"{__name__}.ParticipantRepository"),
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def get_rank(self, participant_id: str) -> int:
        """
        Raises:
            NotFoundError: If the participant is not registered
            TransientStorageError: If the store is unavailable
        """
        with storage_errors("get_rank"):
            async with DatabaseService.get_session() as session:
                score = await self._ranking_repo.get_score(session, participant_id)
                if score is None:
                    if not await self._participant_repo.exists(session, participant_id):
                        raise NotFoundError("Participant", participant_id)
                    score = 0
                greater = await self._ranking_repo.count_greater(session, score)

        return greater + 1

    async def get_top_n(self, limit: Optional[int] = None, offset: int = 0) -> Dict[str, Any]:
        """
        Ordered page of the leaderboard.

        Returns:
            {"entries": [{participant_id, display_name, score, rank}],
             "total_participants": int, "computed_at": iso8601}
        """
        limit, offset = self._validate_page(limit, offset)
        window = self._cache.window_size

        if offset == 0 and limit <= window:
            snapshot = await self._cache.get()
            if snapshot is not None:
                self.log.debug("Rank cache hit", extra={"limit": limit})
                return self._slice(snapshot, limit)

            generation = self._cache.generation
            snapshot = await self._read_page(window, 0)
            await self._cache.store(snapshot, generation=generation)
            self.log.debug(
                "Rank cache repopulated",
                extra={"entries": len(snapshot["entries"]), "ttl_seconds": self._cache.ttl_seconds},
            )
            return self._slice(snapshot, limit)

        return await self._read_page(limit, offset)

    async def is_in_top_n(self, participant_id: str, n: Optional[int] = None) -> bool:
        n = n if n is not None else self.get_int_config("ranking.top_n", 10)
        with storage_errors("is_in_top_n"):
            async with DatabaseService.get_session() as session:
                return await self._ranking_repo.is_in_top(session, participant_id, n)

    async def get_leaderboard(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        caller_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = await self.get_top_n(limit, offset)

        caller_rank: Optional[int] = None
        if caller_id is not None:
            try:
                caller_rank = await self.get_rank(caller_id)
            except NotFoundError:
                caller_rank = None

        return {
            "leaderboard": page["entries"],
            "caller_rank": caller_rank,
            "total_participants": page["total_participants"],
            "last_updated": page["computed_at"],
        }

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _validate_page(self, limit: Optional[int], offset: int) -> tuple[int, int]:
        max_limit = self.get_int_config("ranking.limit.max", 100)
        if limit is None:
            limit = self.get_int_config("ranking.limit.default", 10)
        self.validate_range(limit, "limit", 1, max_limit)
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError("offset", "offset must be a non-negative integer", value=offset)
        return limit, offset

    async def _read_page(self, limit: int, offset: int) -> Dict[str, Any]:
        with storage_errors("get_top_n"):
            async with DatabaseService.get_session() as session:
                entries: List[Dict[str, Any]] = await self._ranking_repo.fetch_window(
                    session, limit, offset
                )
                total = await self._ranking_repo.count(session)

        return {
            "entries": entries,
            "total_participants": total,
            "computed_at": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def _slice(snapshot: Dict[str, Any], limit: int) -> Dict[str, Any]:
        return {
            "entries": snapshot["entries"][:limit],
            "total_participants": snapshot.get("total_participants", len(snapshot["entries"])),
            "computed_at": snapshot.get("computed_at"),
        }
