"""
Generic async repository over one SQLAlchemy model.

Repositories only build and run statements against the session they are
handed; the calling service owns the transaction and decides when to
commit. Each call leaves a DEBUG record naming the model.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    def __init__(self, model_class: Type[ModelT], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    @property
    def _model_name(self) -> str:
        return self.model_class.__name__

    async def get(self, session: AsyncSession, key: Any) -> Optional[ModelT]:
        """Primary-key lookup, served from the identity map when possible."""
        row = await session.get(self.model_class, key)
        self.log.debug("%s.get", self._model_name, extra={"key": key, "hit": row is not None})
        return row

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        for_update: bool = False,
    ) -> Optional[ModelT]:
        """
        At most one row matching ``conditions``.

        With ``for_update`` the row is locked until the session's transaction
        ends, so concurrent writers to it run one after another.
        """
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await session.execute(stmt)).scalar_one_or_none()
        self.log.debug(
            "%s.find_one_where",
            self._model_name,
            extra={"hit": row is not None, "locked": for_update},
        )
        return row

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        total = (await session.execute(stmt)).scalar_one()
        self.log.debug("%s.count", self._model_name, extra={"count": total})
        return total

    def add(self, session: AsyncSession, row: ModelT) -> ModelT:
        session.add(row)
        return row

    async def flush(self, session: AsyncSession) -> None:
        """Push pending rows so server-generated columns are populated."""
        await session.flush()
