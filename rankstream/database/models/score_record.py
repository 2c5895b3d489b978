"""
ScoreRecord Model
=================

Current score per participant. Exactly one row per participant, written only
by the score mutator under ``SELECT ... FOR UPDATE``.

Indexes
-------
- ``ix_score_records_leaderboard`` (score DESC, updated_at, participant_id)
  serves ordered listings and the deterministic tie-break.
- ``ix_score_records_score`` (score DESC) serves rank counting.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rankstream.core.database.base import Base, IdMixin, utc_now

if TYPE_CHECKING:
    from .participant import Participant


class ScoreRecord(Base, IdMixin):
    __tablename__ = "score_records"
    __table_args__ = (
        CheckConstraint("score >= 0", name="score_non_negative"),
        Index("ix_score_records_score", "score", postgresql_ops={"score": "DESC"}),
        Index(
            "ix_score_records_leaderboard",
            "score",
            "updated_at",
            "participant_id",
            postgresql_ops={"score": "DESC"},
        ),
    )

    participant_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        doc="Owning participant; unique so a participant has at most one row",
    )

    score: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        doc="Time the current score was reached; secondary sort key for ties",
    )

    participant: Mapped["Participant"] = relationship(
        "Participant",
        back_populates="score_record",
        lazy="raise",
    )
