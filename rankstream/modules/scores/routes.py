"""Score mutation endpoints under /api/v1/scores."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from rankstream.core.exceptions import TransientStorageError
from rankstream.core.http.dependencies import (
    get_container,
    get_origin,
    origin_rate_gate,
    participant_rate_gate,
    require_identity,
)
from rankstream.core.logging.logger import get_logger
from rankstream.core.services.container import ServiceContainer
from rankstream.core.services.error_response_service import success_envelope
from rankstream.modules.identity.tokens import Identity
from rankstream.modules.scores.service import Origin

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/scores",
    tags=["scores"],
    dependencies=[Depends(origin_rate_gate)],
)


class ScoreUpdateRequest(BaseModel):
    # Typed loosely so the increment check yields the score_increment error code.
    score_increment: Any = None
    action_id: Optional[str] = None
    timestamp: Optional[int] = None


@router.post("", dependencies=[Depends(participant_rate_gate)])
async def update_score(
    body: ScoreUpdateRequest,
    identity: Identity = Depends(require_identity),
    origin: Origin = Depends(get_origin),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    result = await container.scores.apply_delta(
        identity.participant_id,
        body.score_increment,
        action_id=body.action_id,
        timestamp_ms=body.timestamp,
        origin=origin,
    )
    # The delta is committed; a failed rank read must not invite a retry.
    rank: Optional[int] = None
    in_top_n: Optional[bool] = None
    try:
        rank = await container.ranking.get_rank(identity.participant_id)
        in_top_n = await container.ranking.is_in_top_n(identity.participant_id)
    except TransientStorageError as exc:
        logger.warning(
            "Score committed but rank unavailable",
            extra={"new_score": result.new_score, "reason": exc.reason},
        )

    return success_envelope(
        {
            "participant_id": result.participant_id,
            "previous_score": result.previous_score,
            "new_score": result.new_score,
            "rank": rank,
            "is_top_n": in_top_n,
        },
        message="Score updated successfully",
    )


@router.get("/me")
async def my_score(
    identity: Identity = Depends(require_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    score = await container.scores.get_current_score(identity.participant_id)
    rank = await container.ranking.get_rank(identity.participant_id)
    return success_envelope(
        {"participant_id": identity.participant_id, "score": score, "rank": rank}
    )
