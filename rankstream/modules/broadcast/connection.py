"""
Observer connection lifecycle.

State machine::

    CONNECTING -> AUTHENTICATED -> SUBSCRIBED -> CLOSING -> CLOSED
         \\______________\\______________\\____________________/^

Any state may drop straight to CLOSED on a client disconnect or transport
error; CLOSING is only used for server-initiated closes (liveness failure,
shutdown, capacity). Writes to one transport are serialized by a
per-connection lock.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

from rankstream.core.logging.logger import get_logger

if TYPE_CHECKING:
    from rankstream.modules.identity.tokens import Identity

logger = get_logger(__name__)


class CloseCode:
    """WebSocket close codes used by the live channel."""

    GOING_AWAY = 1001
    POLICY_VIOLATION = 1008
    INTERNAL_ERROR = 1011
    TRY_AGAIN_LATER = 1013


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    SUBSCRIBED = "subscribed"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS = {
    ConnectionState.CONNECTING: {ConnectionState.AUTHENTICATED, ConnectionState.CLOSED},
    ConnectionState.AUTHENTICATED: {
        ConnectionState.SUBSCRIBED,
        ConnectionState.CLOSING,
        ConnectionState.CLOSED,
    },
    ConnectionState.SUBSCRIBED: {ConnectionState.CLOSING, ConnectionState.CLOSED},
    ConnectionState.CLOSING: {ConnectionState.CLOSED},
    ConnectionState.CLOSED: set(),
}


class InvalidTransitionError(RuntimeError):
    def __init__(self, current: ConnectionState, target: ConnectionState) -> None:
        super().__init__(f"Illegal connection transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


class Transport(Protocol):
    """The subset of a WebSocket the hub needs."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


class ObserverConnection:
    """One live observer channel bound to (at most) one participant identity."""

    def __init__(self, transport: Transport, connection_id: Optional[str] = None) -> None:
        self.transport = transport
        self.connection_id = connection_id or uuid.uuid4().hex
        self.participant_id: Optional[str] = None
        self.display_name: Optional[str] = None
        self.connected_at = datetime.now(timezone.utc)
        self.missed_probes = 0
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self._state = ConnectionState.CONNECTING
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f"ObserverConnection(id={self.connection_id!r}, "
            f"participant={self.participant_id!r}, state={self._state.value})"
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state not in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    def _transition(self, target: ConnectionState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state, target)
        logger.debug(
            "Connection state change",
            extra={
                "connection_id": self.connection_id,
                "participant_id": self.participant_id,
                "old_state": self._state.value,
                "new_state": target.value,
            },
        )
        self._state = target

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def authenticate(self, identity: Identity) -> None:
        self._transition(ConnectionState.AUTHENTICATED)
        self.participant_id = identity.participant_id
        self.display_name = identity.display_name

    def mark_subscribed(self) -> None:
        self._transition(ConnectionState.SUBSCRIBED)

    def mark_closed(self) -> None:
        """Client-side disconnect or transport failure: drop straight to CLOSED."""
        if self._state is not ConnectionState.CLOSED:
            self._transition(ConnectionState.CLOSED)

    async def close(self, code: int, reason: str) -> None:
        """Server-initiated close: CLOSING, send the close frame, then CLOSED."""
        if not self.is_open:
            return
        if self._state is ConnectionState.CONNECTING:
            self._transition(ConnectionState.CLOSED)
        else:
            self._transition(ConnectionState.CLOSING)

        self.close_code = code
        self.close_reason = reason
        try:
            await self.transport.close(code=code, reason=reason)
        except (RuntimeError, OSError) as exc:
            # Transport already gone; the close frame cannot be delivered.
            logger.debug(
                "Close frame not delivered",
                extra={"connection_id": self.connection_id, "error": str(exc)},
            )
        finally:
            self.mark_closed()

    # ------------------------------------------------------------------ #
    # I/O
    # ------------------------------------------------------------------ #

    async def send(self, message: Dict[str, Any]) -> bool:
        """
        Push one JSON message. Returns False (and marks the connection
        CLOSED) when the transport fails or the connection is not live.
        """
        if self._state not in (ConnectionState.AUTHENTICATED, ConnectionState.SUBSCRIBED):
            return False

        async with self._send_lock:
            try:
                await self.transport.send_json(message)
                return True
            except Exception as exc:
                logger.info(
                    "Push to observer failed; marking closed",
                    extra={
                        "connection_id": self.connection_id,
                        "participant_id": self.participant_id,
                        "message_type": message.get("type"),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                self.mark_closed()
                return False

    def record_activity(self) -> None:
        """Any inbound frame proves liveness."""
        self.missed_probes = 0
