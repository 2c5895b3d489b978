"""
ConnectionRegistry: per-process multi-map of participant -> connections.

Each participant maps to its own dict of connection handles keyed by
connection id, so several devices of one participant can be attached at
once. Attach, detach and snapshot run under one short asyncio lock and never
await I/O while holding it; broadcast iterates over a snapshot copy.

The lock is registry-wide, not per participant: each critical section is a
few dict operations on the event loop thread with no await inside.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List

from rankstream.core.logging.logger import get_logger
from rankstream.modules.broadcast.connection import ObserverConnection

logger = get_logger(__name__)


class ConnectionRegistry:
    def __init__(self, max_connections: int = 10_000) -> None:
        self.max_connections = max_connections
        self._by_participant: Dict[str, Dict[str, ObserverConnection]] = {}
        self._total = 0
        self._lock = asyncio.Lock()

    async def add(self, connection: ObserverConnection) -> bool:
        """Register an authenticated connection. False when at capacity."""
        if connection.participant_id is None:
            raise ValueError("Only authenticated connections can be registered")

        async with self._lock:
            if self._total >= self.max_connections:
                logger.warning(
                    "Connection limit reached",
                    extra={
                        "participant_id": connection.participant_id,
                        "max_connections": self.max_connections,
                    },
                )
                return False

            bucket = self._by_participant.setdefault(connection.participant_id, {})
            if connection.connection_id not in bucket:
                bucket[connection.connection_id] = connection
                self._total += 1

        logger.info(
            "Observer attached",
            extra={
                "participant_id": connection.participant_id,
                "connection_id": connection.connection_id,
                "total_connections": self._total,
            },
        )
        return True

    async def remove(self, connection: ObserverConnection) -> bool:
        if connection.participant_id is None:
            return False

        async with self._lock:
            bucket = self._by_participant.get(connection.participant_id)
            if not bucket or bucket.pop(connection.connection_id, None) is None:
                return False
            self._total -= 1
            if not bucket:
                del self._by_participant[connection.participant_id]

        logger.info(
            "Observer detached",
            extra={
                "participant_id": connection.participant_id,
                "connection_id": connection.connection_id,
                "total_connections": self._total,
            },
        )
        return True

    async def snapshot(self) -> List[ObserverConnection]:
        async with self._lock:
            return [
                connection
                for bucket in self._by_participant.values()
                for connection in bucket.values()
            ]

    async def connections_for(self, participant_id: str) -> List[ObserverConnection]:
        async with self._lock:
            return list(self._by_participant.get(participant_id, {}).values())

    def stats(self) -> Dict[str, int]:
        return {
            "total_connections": self._total,
            "unique_participants": len(self._by_participant),
            "max_connections": self.max_connections,
        }
