"""
Score Service
=============

Purpose
-------
The Score Mutator: applies a bounded positive increment to a participant's
score as one atomic unit of work and records an audit entry alongside it.

Domain
------
- Validation (increment bounds, replay window, action id) happens before
  any storage access.
- The participant's ScoreRecord row is locked with ``SELECT ... FOR UPDATE``
  so concurrent deltas for one participant apply strictly in sequence.
  A missing row counts as score 0 and is created in the same transaction.
- The ScoreDelta audit row is written in the same transaction as the score,
  so neither can be observed without the other.
- The whole unit of work is bounded by ``scores.storage_timeout_seconds``;
  a timeout rolls back and surfaces ``TransientStorageError``.
- After commit, the participant score cache and the shared Rank Cache are
  invalidated unconditionally and ``scores.delta_applied`` is published.

Events
------
- ``scores.delta_applied``: {participant_id, previous_score, new_score,
  increment, action_id, timestamp}
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from rankstream.core.database import DatabaseService, storage_errors
from rankstream.core.exceptions import ConsistencyViolation
from rankstream.core.logging.logger import get_logger
from rankstream.database.models import Participant, ScoreDelta, ScoreRecord
from rankstream.modules.identity.repository import ParticipantRepository
from rankstream.modules.scores.repository import (
    ScoreDeltaRepository,
    ScoreRecordRepository,
)
from rankstream.modules.scores.validators import (
    validate_action_id,
    validate_increment,
    validate_timestamp,
)
from rankstream.modules.shared.base_service import BaseService
from rankstream.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from rankstream.core.config.manager import ConfigManager
    from rankstream.core.event.bus import EventBus
    from rankstream.modules.ranking.cache import ParticipantScoreCache, RankCache

DELTA_APPLIED_EVENT = "scores.delta_applied"


@dataclass(frozen=True)
class Origin:
    """Request origin recorded on the audit entry."""

    address: Optional[str] = None
    agent: Optional[str] = None


@dataclass(frozen=True)
class DeltaResult:
    participant_id: str
    increment: int
    previous_score: int
    new_score: int


class ScoreService(BaseService):
    """
    Atomic score mutation with audit trail and cache invalidation.

    Public Methods
    --------------
    - apply_delta() -> DeltaResult
    - get_current_score() -> int (participant score cache, then store)
    """

    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: EventBus,
        logger: Logger,
        rank_cache: RankCache,
        score_cache: ParticipantScoreCache,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._rank_cache = rank_cache
        self._score_cache = score_cache

        self._participant_repo = ParticipantRepository(
            model_class=Participant,
            logger=get_logger(f"{__name__}.ParticipantRepository"),
        )
        self._record_repo = ScoreRecordRepository(
            model_class=ScoreRecord,
            logger=get_logger(f"{__name__}.ScoreRecordRepository"),
        )
        self._delta_repo = ScoreDeltaRepository(
            model_class=ScoreDelta,
            logger=get_logger(f"{__name__}.ScoreDeltaRepository"),
        )

    # ========================================================================
    # PUBLIC API - Write Operations
    # ========================================================================

    async def apply_delta(
        self,
        participant_id: str,
        increment: Any,
        action_id: Optional[str] = None,
        timestamp_ms: Optional[int] = None,
        origin: Optional[Origin] = None,
    ) -> DeltaResult:
        """
        Add ``increment`` to the participant's score.

        Raises:
            ValidationError: Bad increment, stale/future timestamp or action id;
                raised before any storage access
            NotFoundError: Unknown participant; nothing is written
            TransientStorageError: Store timeout or unavailability; rolled back
            ConsistencyViolation: Post-condition failure; rolled back
        """
        increment = validate_increment(increment, self._config)
        validate_timestamp(timestamp_ms, self._config)
        action_id = validate_action_id(action_id)
        origin = origin or Origin()

        timeout = self.get_float_config("scores.storage_timeout_seconds", 5.0)

        self.log_operation(
            "apply_delta",
            participant_id=participant_id,
            increment=increment,
            action_id=action_id,
        )

        with storage_errors("apply_delta"):
            result = await asyncio.wait_for(
                self._apply_in_transaction(participant_id, increment, action_id, origin),
                timeout=timeout,
            )

        await self._invalidate_caches(participant_id)

        await self.emit_event(
            DELTA_APPLIED_EVENT,
            {
                "participant_id": participant_id,
                "previous_score": result.previous_score,
                "new_score": result.new_score,
                "increment": increment,
                "action_id": action_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

        self.log.info(
            f"Score updated: +{increment}",
            extra={
                "participant_id": participant_id,
                "previous_score": result.previous_score,
                "new_score": result.new_score,
                "increment": increment,
            },
        )
        return result

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_current_score(self, participant_id: str) -> int:
        """
        Current score, served from the participant score cache when present.

        Raises:
            NotFoundError: If the participant is not registered
        """
        cached = await self._score_cache.get(participant_id)
        if cached is not None:
            return cached

        with storage_errors("get_current_score"):
            async with DatabaseService.get_session() as session:
                score = await self._record_repo.current_score(session, participant_id)
                if score is None:
                    if not await self._participant_repo.exists(session, participant_id):
                        raise NotFoundError("Participant", participant_id)
                    score = 0

        await self._score_cache.store(participant_id, score)
        return score

    # ========================================================================
    # INTERNALS
    # ========================================================================

    async def _apply_in_transaction(
        self,
        participant_id: str,
        increment: int,
        action_id: Optional[str],
        origin: Origin,
    ) -> DeltaResult:
        async with DatabaseService.get_transaction() as session:
            if not await self._participant_repo.exists(session, participant_id):
                raise NotFoundError("Participant", participant_id)

            record = await self._record_repo.lock_for_update(session, participant_id)
            previous_score = record.score
            new_score = previous_score + increment

            record.score = new_score
            record.updated_at = datetime.now(timezone.utc)

            delta = self._delta_repo.add(
                session,
                ScoreDelta(
                    participant_id=participant_id,
                    increment=increment,
                    previous_score=previous_score,
                    new_score=new_score,
                    action_id=action_id,
                    origin_address=origin.address,
                    origin_agent=origin.agent,
                ),
            )
            await self._delta_repo.flush(session)
            self._check_consistency(record, delta, increment)

            return DeltaResult(
                participant_id=participant_id,
                increment=increment,
                previous_score=previous_score,
                new_score=new_score,
            )

    def _check_consistency(
        self,
        record: ScoreRecord,
        delta: ScoreDelta,
        increment: int,
    ) -> None:
        details: Dict[str, Any] = {
            "participant_id": record.participant_id,
            "record_score": record.score,
            "previous_score": delta.previous_score,
            "new_score": delta.new_score,
            "increment": increment,
        }
        if delta.id is None or delta.new_score != delta.previous_score + increment:
            self.log.critical("Audit entry invariant violated", extra=details)
            raise ConsistencyViolation("audit_delta", details)
        if record.score != delta.new_score:
            self.log.critical("Score record diverged from audit entry", extra=details)
            raise ConsistencyViolation("score_matches_audit", details)

    async def _invalidate_caches(self, participant_id: str) -> None:
        # Both caches degrade silently; their TTLs bound any staleness left.
        await self._score_cache.invalidate(participant_id)
        await self._rank_cache.invalidate()
