"""Leaderboard read endpoints under /api/v1/leaderboard."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from rankstream.core.http.dependencies import get_container, optional_identity, origin_rate_gate
from rankstream.core.services.container import ServiceContainer
from rankstream.core.services.error_response_service import success_envelope
from rankstream.modules.identity.tokens import Identity

router = APIRouter(
    prefix="/api/v1/leaderboard",
    tags=["leaderboard"],
    dependencies=[Depends(origin_rate_gate)],
)


@router.get("")
async def leaderboard(
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    identity: Optional[Identity] = Depends(optional_identity),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    # Range checks live in RankingService so every caller gets the same errors.
    data = await container.ranking.get_leaderboard(
        limit=limit,
        offset=offset,
        caller_id=identity.participant_id if identity is not None else None,
    )
    return success_envelope(data)


@router.get("/participants/{participant_id}/rank")
async def participant_rank(
    participant_id: str,
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    rank = await container.ranking.get_rank(participant_id)
    return success_envelope({"participant_id": participant_id, "rank": rank})
