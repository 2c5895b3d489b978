"""
Ranking queries against the score ledger.

Ordering is score DESC, then ``updated_at`` ASC (earliest to reach a score
ranks first among equals), then participant id ASC. Ranks are competition
ranks: ``1 + count(strictly greater)``, so equal scores share a rank.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import func, select

from rankstream.database.models import Participant, ScoreRecord
from rankstream.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class RankingRepository(BaseRepository[ScoreRecord]):
    """Read-only ranking queries over ``score_records`` joined to ``participants``."""

    @staticmethod
    def _ordering() -> tuple:
        return (
            ScoreRecord.score.desc(),
            ScoreRecord.updated_at.asc(),
            ScoreRecord.participant_id.asc(),
        )

    async def fetch_window(
        self, session: AsyncSession, limit: int, offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Return ``limit`` ranked entries starting at ``offset``."""
        rank_column = func.rank().over(order_by=ScoreRecord.score.desc()).label("rank")
        stmt = (
            select(
                ScoreRecord.participant_id,
                Participant.display_name,
                ScoreRecord.score,
                rank_column,
            )
            .join(Participant, Participant.id == ScoreRecord.participant_id)
            .order_by(*self._ordering())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        entries = [
            {
                "participant_id": row.participant_id,
                "display_name": row.display_name,
                "score": int(row.score),
                "rank": int(row.rank),
            }
            for row in result
        ]

        self.log.debug(
            "RankingRepository.fetch_window",
            extra={"limit": limit, "offset": offset, "found_count": len(entries)},
        )
        return entries

    async def get_score(self, session: AsyncSession, participant_id: str) -> Optional[int]:
        result = await session.execute(
            select(ScoreRecord.score).where(ScoreRecord.participant_id == participant_id)
        )
        score = result.scalar_one_or_none()
        return int(score) if score is not None else None

    async def count_greater(self, session: AsyncSession, score: int) -> int:
        return await self.count(session, ScoreRecord.score > score)

    async def is_in_top(self, session: AsyncSession, participant_id: str, n: int) -> bool:
        top = (
            select(ScoreRecord.participant_id)
            .order_by(*self._ordering())
            .limit(n)
            .subquery()
        )
        result = await session.execute(
            select(func.count()).select_from(top).where(top.c.participant_id == participant_id)
        )
        return result.scalar_one() > 0
