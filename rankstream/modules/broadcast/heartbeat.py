"""
Liveness probing for observer connections.

Every ``interval`` seconds each open connection either gets a ping (and its
missed-probe counter goes up) or, once ``max_missed`` probes are
outstanding, is closed with 1001. Any inbound frame resets the counter.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from rankstream.core.logging.logger import get_logger
from rankstream.modules.broadcast.connection import CloseCode, ObserverConnection
from rankstream.modules.broadcast.registry import ConnectionRegistry

logger = get_logger(__name__)


class HeartbeatMonitor:
    def __init__(
        self,
        registry: ConnectionRegistry,
        interval_seconds: float,
        max_missed: int,
        on_dead: Callable[[ObserverConnection], Awaitable[None]],
    ) -> None:
        self._registry = registry
        self.interval_seconds = interval_seconds
        self.max_missed = max_missed
        self._on_dead = on_dead
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="broadcast-heartbeat"
        )
        logger.info(
            "Heartbeat started",
            extra={"interval_seconds": self.interval_seconds, "max_missed": self.max_missed},
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.tick()
            except Exception as exc:
                logger.error(
                    "Heartbeat tick failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )

    async def tick(self) -> int:
        """Run one probe round. Returns how many connections were declared dead."""
        dead = 0
        for connection in await self._registry.snapshot():
            if not connection.is_open:
                await self._on_dead(connection)
                dead += 1
                continue

            if connection.missed_probes >= self.max_missed:
                logger.info(
                    "Observer failed liveness check",
                    extra={
                        "connection_id": connection.connection_id,
                        "participant_id": connection.participant_id,
                        "missed_probes": connection.missed_probes,
                    },
                )
                await connection.close(CloseCode.GOING_AWAY, "Liveness check failed")
                await self._on_dead(connection)
                dead += 1
                continue

            connection.missed_probes += 1
            delivered = await connection.send(
                {"type": "ping", "timestamp": datetime.now(timezone.utc).isoformat()}
            )
            if not delivered:
                await self._on_dead(connection)
                dead += 1
        return dead
