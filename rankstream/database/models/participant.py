"""
Participant Model
=================

Identity of a ranked participant. Rows are created by the external
registration flow (or ``scripts/issue_token.py --register`` in development)
and are read-only for the scoring core.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rankstream.core.database.base import Base, utc_now

if TYPE_CHECKING:
    from .score_record import ScoreRecord


class Participant(Base):
    """Opaque participant identifier plus display name."""

    __tablename__ = "participants"

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        doc="Opaque stable participant identifier (token subject)",
    )

    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        doc="Human-readable name shown on the leaderboard",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )

    score_record: Mapped[Optional["ScoreRecord"]] = relationship(
        "ScoreRecord",
        back_populates="participant",
        uselist=False,
        lazy="raise",
    )
