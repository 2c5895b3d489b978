"""WS /api/v1/scores/live"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket

from rankstream.core.http.dependencies import get_container
from rankstream.core.logging.logger import LogContext, get_logger, set_log_context
from rankstream.core.services.container import ServiceContainer
from rankstream.modules.broadcast.connection import CloseCode, ObserverConnection
from rankstream.modules.shared.exceptions import AuthorizationError

logger = get_logger(__name__)

router = APIRouter(tags=["live"])


def _extract_token(websocket: WebSocket) -> Optional[str]:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def _frame_text(message: Dict[str, Any]) -> Optional[str]:
    """Text of a data frame; binary frames must be UTF-8. None when unreadable."""
    text = message.get("text")
    if text is not None:
        return text
    data = message.get("bytes")
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _parse_frame(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return None


@router.websocket("/api/v1/scores/live")
async def live_scores(
    websocket: WebSocket,
    container: ServiceContainer = Depends(get_container),
) -> None:
    await websocket.accept()
    connection = ObserverConnection(websocket)

    async with LogContext(connection_id=connection.connection_id, route="/api/v1/scores/live"):
        try:
            identity = container.identity.verify(_extract_token(websocket))
        except AuthorizationError as exc:
            logger.info("Observer rejected", extra={"reason": exc.reason})
            await connection.close(CloseCode.POLICY_VIOLATION, exc.message)
            return

        connection.authenticate(identity)
        set_log_context(participant_id=identity.participant_id)

        hub = container.broadcast
        if not await hub.attach(connection):
            return

        try:
            while connection.is_open:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    logger.debug("Observer disconnected", extra={"close_code": message.get("code")})
                    break

                raw = _frame_text(message)
                if raw is None:
                    logger.info("Observer sent an unreadable frame")
                    await connection.close(CloseCode.POLICY_VIOLATION, "Unsupported frame")
                    break
                await hub.handle_client_message(connection, _parse_frame(raw))
        finally:
            await hub.detach(connection)
