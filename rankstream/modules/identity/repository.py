"""Participant lookups and development-time registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.dialects.postgresql import insert

from rankstream.database.models import Participant
from rankstream.modules.shared.base_repository import BaseRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class ParticipantRepository(BaseRepository[Participant]):
    async def exists(self, session: AsyncSession, participant_id: str) -> bool:
        return await self.get(session, participant_id) is not None

    async def register(
        self, session: AsyncSession, participant_id: str, display_name: str
    ) -> bool:
        """
        Create the participant if absent. Registration tooling and tests only.

        Returns True when a new row was inserted.
        """
        result = await session.execute(
            insert(Participant)
            .values(id=participant_id, display_name=display_name)
            .on_conflict_do_nothing(index_elements=[Participant.id])
        )
        created = bool(result.rowcount)
        if created:
            self.log.info(
                "Participant registered",
                extra={"participant_id": participant_id, "display_name": display_name},
            )
        return created
