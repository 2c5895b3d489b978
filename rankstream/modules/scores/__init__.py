"""Score mutation: validation, atomic ledger update, audit trail."""

from .service import DELTA_APPLIED_EVENT, DeltaResult, Origin, ScoreService

__all__ = ["DELTA_APPLIED_EVENT", "DeltaResult", "Origin", "ScoreService"]
