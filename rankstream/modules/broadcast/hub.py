"""
Broadcast Hub
=============

Purpose
-------
Deliver "ranking changed" notifications to every live observer attached to
this process, and through the shared Redis channel, to every other process.

Domain
------
- Subscribes to ``scores.delta_applied`` on the in-process event bus and
  republishes ``{participant, timestamp}`` on ``broadcast.channel``.
- Every process (this one included) receives channel messages through its
  BroadcastRelay and pushes a fresh top-N to all of its SUBSCRIBED
  observers, whoever triggered the change.
- When the relay is down, or publishing fails, local observers are notified
  directly so a single process keeps working without Redis.
- Delivery is at-least-once; missed notifications are not replayed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from redis.exceptions import RedisError

from rankstream.core.event.types import ListenerPriority
from rankstream.core.exceptions import CircuitBreakerError, TransientStorageError
from rankstream.core.logging.logger import LogContext
from rankstream.modules.broadcast.connection import CloseCode, ObserverConnection
from rankstream.modules.broadcast.heartbeat import HeartbeatMonitor
from rankstream.modules.broadcast.registry import ConnectionRegistry
from rankstream.modules.broadcast.relay import BroadcastRelay
from rankstream.modules.scores.service import DELTA_APPLIED_EVENT
from rankstream.modules.shared.base_service import BaseService
from rankstream.modules.shared.exceptions import NotFoundError

if TYPE_CHECKING:
    from logging import Logger

    from rankstream.core.config.manager import ConfigManager
    from rankstream.core.event.bus import EventBus
    from rankstream.core.redis.service import RedisService
    from rankstream.modules.ranking.service import RankingService

PUBLISH_FAILURES = (RedisError, CircuitBreakerError, OSError, RuntimeError, asyncio.TimeoutError)


class BroadcastHub(BaseService):
    """
    Fan-out of leaderboard snapshots to observer connections.

    Public Methods
    --------------
    - start() / stop()
    - attach(connection) -> bool
    - detach(connection)
    - handle_client_message(connection, message)
    - notify_local(participant_id, timestamp) -> delivered count
    - get_stats()
    """

    def __init__(
        self,
        config_manager: type[ConfigManager],
        event_bus: EventBus,
        logger: Logger,
        ranking_service: RankingService,
        redis_service: Optional[type[RedisService]] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._ranking = ranking_service

        self.registry = ConnectionRegistry(
            max_connections=self.get_int_config("broadcast.max_connections", 10_000)
        )
        relay_kwargs: Dict[str, Any] = {}
        if redis_service is not None:
            relay_kwargs["redis_service"] = redis_service
        self.relay = BroadcastRelay(
            channel=str(self.get_config("broadcast.channel", "leaderboard:updates")),
            handler=self._on_relay_message,
            reconnect_delay=self.get_float_config("broadcast.relay.reconnect_delay_seconds", 1.0),
            max_reconnect_delay=self.get_float_config(
                "broadcast.relay.max_reconnect_delay_seconds", 30.0
            ),
            **relay_kwargs,
        )
        self.heartbeat = HeartbeatMonitor(
            registry=self.registry,
            interval_seconds=self.get_float_config("broadcast.heartbeat.interval_seconds", 30.0),
            max_missed=self.get_int_config("broadcast.heartbeat.max_missed", 2),
            on_dead=self.detach,
        )
        self._listener_id: Optional[str] = None

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self, *, use_relay: bool = True) -> None:
        self._listener_id = self._events.subscribe(
            DELTA_APPLIED_EVENT,
            self._on_delta_applied,
            priority=ListenerPriority.LOW,
            identifier=f"broadcast_hub:{id(self)}",
        )
        if use_relay:
            self.relay.start()
        self.heartbeat.start()
        self.log.info(
            "Broadcast hub started",
            extra={"channel": self.relay.channel, "relay_enabled": use_relay},
        )

    async def stop(self) -> None:
        if self._listener_id is not None:
            self._events.unsubscribe(DELTA_APPLIED_EVENT, self._listener_id)
            self._listener_id = None

        await self.heartbeat.stop()
        await self.relay.stop()

        connections = await self.registry.snapshot()
        for connection in connections:
            await connection.close(CloseCode.GOING_AWAY, "Server shutting down")
            await self.registry.remove(connection)

        self.log.info("Broadcast hub stopped", extra={"closed_connections": len(connections)})

    # ========================================================================
    # CONNECTIONS
    # ========================================================================

    async def attach(self, connection: ObserverConnection) -> bool:
        """
        Register an AUTHENTICATED connection, move it to SUBSCRIBED and push
        the initial listing exactly once. Returns False when the connection
        was refused and closed.
        """
        if not await self.registry.add(connection):
            await connection.close(CloseCode.TRY_AGAIN_LATER, "Connection limit reached")
            return False

        connection.mark_subscribed()

        try:
            listing = await self._ranking.get_leaderboard(caller_id=connection.participant_id)
        except (TransientStorageError, CircuitBreakerError) as exc:
            self.log_error("attach", exc, participant_id=connection.participant_id)
            await connection.close(CloseCode.INTERNAL_ERROR, "Leaderboard unavailable")
            await self.registry.remove(connection)
            return False

        if not await connection.send({"type": "leaderboard", "data": listing}):
            await self.registry.remove(connection)
            return False
        return True

    async def detach(self, connection: ObserverConnection) -> None:
        connection.mark_closed()
        await self.registry.remove(connection)

    async def handle_client_message(
        self, connection: ObserverConnection, message: Any
    ) -> None:
        connection.record_activity()

        message_type = message.get("type") if isinstance(message, dict) else None
        if message_type == "subscribe":
            await connection.send({"type": "subscribed", "channel": "leaderboard"})
        elif message_type not in ("pong", "ping"):
            self.log.debug(
                "Ignoring client message",
                extra={
                    "connection_id": connection.connection_id,
                    "message_type": message_type,
                },
            )

    # ========================================================================
    # NOTIFICATIONS
    # ========================================================================

    async def notify_local(self, participant_id: Optional[str], timestamp: Optional[str]) -> int:
        """
        Push a fresh top-N to every SUBSCRIBED connection in this process.
        Returns how many pushes were delivered.
        """
        connections = await self.registry.snapshot()
        if not connections:
            return 0

        top_n = self.get_int_config("ranking.top_n", 10)
        page = await self._ranking.get_top_n(limit=top_n)

        updated: Optional[Dict[str, Any]] = None
        if participant_id is not None:
            try:
                updated = {
                    "participant_id": participant_id,
                    "new_rank": await self._ranking.get_rank(participant_id),
                }
            except NotFoundError:
                updated = None

        message = {
            "type": "scoreboard_update",
            "data": {
                "leaderboard": page["entries"],
                "updated_participant": updated,
                "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
            },
        }

        results = await asyncio.gather(*(connection.send(message) for connection in connections))

        delivered = 0
        for connection, ok in zip(connections, results):
            if ok:
                delivered += 1
            else:
                await self.detach(connection)

        self.log.debug(
            "Scoreboard update pushed",
            extra={
                "participant_id": participant_id,
                "delivered": delivered,
                "dropped": len(connections) - delivered,
            },
        )
        return delivered

    async def _on_delta_applied(self, payload: Dict[str, Any]) -> None:
        participant_id = payload["participant_id"]
        timestamp = payload.get("timestamp") or datetime.now(timezone.utc).isoformat()

        if self.relay.is_connected:
            try:
                await self.relay.publish(participant_id, timestamp)
                return
            except PUBLISH_FAILURES as exc:
                self.log.warning(
                    "Relay publish failed; notifying local observers only",
                    extra={
                        "participant_id": participant_id,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )

        await self.notify_local(participant_id, timestamp)

    async def _on_relay_message(self, message: Dict[str, Any]) -> None:
        async with LogContext(operation="broadcast_relay"):
            await self.notify_local(message.get("participant"), message.get("timestamp"))

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.registry.stats(),
            "relay": self.relay.get_status(),
            "heartbeat_running": self.heartbeat.is_running,
        }
