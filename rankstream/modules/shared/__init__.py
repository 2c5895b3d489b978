"""Base classes and caller-facing errors shared by the feature modules."""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    AuthorizationError,
    NotFoundError,
    RankstreamDomainException,
    RateLimitError,
    ValidationError,
)

__all__ = [
    "BaseService",
    "BaseRepository",
    "RankstreamDomainException",
    "AuthorizationError",
    "NotFoundError",
    "RateLimitError",
    "ValidationError",
]
