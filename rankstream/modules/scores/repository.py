"""
Score ledger repositories.

``ScoreRecordRepository.lock_for_update`` is the serialization point for
concurrent mutations of one participant: it guarantees a row exists
(``INSERT ... ON CONFLICT DO NOTHING``) and then takes its row lock with
``SELECT ... FOR UPDATE``. Two first-ever deltas for the same participant
therefore queue on the same row instead of racing on the unique constraint.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy.dialects.postgresql import insert

from rankstream.database.models import ScoreDelta, ScoreRecord
from rankstream.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class ScoreRecordRepository(BaseRepository[ScoreRecord]):
    async def lock_for_update(self, session: AsyncSession, participant_id: str) -> ScoreRecord:
        await session.execute(
            insert(ScoreRecord)
            .values(participant_id=participant_id, score=0)
            .on_conflict_do_nothing(index_elements=[ScoreRecord.participant_id])
        )
        record = await self.find_one_where(
            session,
            ScoreRecord.participant_id == participant_id,
            for_update=True,
        )
        # The insert above guarantees a row inside this transaction.
        assert record is not None
        return record

    async def current_score(self, session: AsyncSession, participant_id: str) -> Optional[int]:
        record = await self.find_one_where(session, ScoreRecord.participant_id == participant_id)
        return record.score if record is not None else None


class ScoreDeltaRepository(BaseRepository[ScoreDelta]):
    """Append-only audit rows; inserted through ``add``."""
