"""
Database Models Package
=======================

SQLAlchemy 2.0 declarative models for Rankstream. Schema only: columns,
constraints and indexes. Queries live in module repositories.

- Participant: identity and display name (externally created)
- ScoreRecord: current score, one row per participant
- ScoreDelta: append-only audit trail of mutations
"""

from rankstream.core.database.base import Base

from .participant import Participant
from .score_delta import ScoreDelta
from .score_record import ScoreRecord

__all__ = [
    "Base",
    "Participant",
    "ScoreRecord",
    "ScoreDelta",
]
