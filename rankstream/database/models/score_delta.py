"""
ScoreDelta Model
================

Append-only audit trail. One row per successful mutation, written in the
same transaction as the ScoreRecord update. Never updated or deleted.

Invariant: ``new_score == previous_score + increment``.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rankstream.core.database.base import Base, IdMixin, TimestampMixin


class ScoreDelta(Base, IdMixin, TimestampMixin):
    __tablename__ = "score_deltas"
    __table_args__ = (
        Index("ix_score_deltas_participant_id", "participant_id"),
        Index("ix_score_deltas_created_at", "created_at"),
        CheckConstraint("increment > 0", name="increment_positive"),
        CheckConstraint("new_score = previous_score + increment", name="new_score_matches_increment"),
    )

    participant_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("participants.id", ondelete="CASCADE"),
        nullable=False,
    )

    increment: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_score: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_score: Mapped[int] = mapped_column(BigInteger, nullable=False)

    action_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        doc="Opaque client action identifier",
    )

    origin_address: Mapped[Optional[str]] = mapped_column(
        String(45),
        nullable=True,
        doc="Client IP address (IPv6 max length)",
    )

    origin_agent: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Client User-Agent header",
    )
