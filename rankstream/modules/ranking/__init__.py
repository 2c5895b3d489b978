"""Rank queries and the Redis-backed rank caches."""

from .cache import ParticipantScoreCache, RankCache
from .repository import RankingRepository
from .service import RankingService

__all__ = [
    "ParticipantScoreCache",
    "RankCache",
    "RankingRepository",
    "RankingService",
]
