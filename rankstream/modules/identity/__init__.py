"""Identity boundary: signed participant tokens and participant lookups."""

from .repository import ParticipantRepository
from .tokens import Identity, IdentityVerifier

__all__ = ["Identity", "IdentityVerifier", "ParticipantRepository"]
