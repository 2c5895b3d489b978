"""
Runs the listeners of one publish according to their tiers.

A listener that raises or overruns its timeout is logged, counted through
``on_error`` and contributes ``None``; the rest still run and the publisher
never sees the failure.
"""

from __future__ import annotations

import asyncio
from itertools import groupby
from typing import Any, Callable, Optional

from rankstream.core.event.types import EventListener, EventPayload, ListenerPriority
from rankstream.core.logging.logger import get_logger

logger = get_logger(__name__)

ErrorHook = Callable[[str], None]


class EventScheduler:
    def __init__(self) -> None:
        self._detached: set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        *,
        timeouts: dict[ListenerPriority, Optional[float]],
        on_error: ErrorHook,
    ) -> list[Any]:
        """
        ``listeners`` must already be in priority order. Returns the results
        of every awaited tier; LOW listeners are started and left running.
        """
        results: list[Any] = []

        for priority, group in groupby(listeners, key=lambda l: l.priority):
            tier = list(group)

            if priority is ListenerPriority.LOW:
                for listener in tier:
                    task = asyncio.create_task(
                        self._call(listener, event_name, payload, on_error),
                        name=f"event-low:{event_name}:{listener.identifier}",
                    )
                    self._detached.add(task)
                    task.add_done_callback(self._detached.discard)

            elif priority is ListenerPriority.NORMAL:
                results += await asyncio.gather(
                    *(self._call(listener, event_name, payload, on_error) for listener in tier)
                )

            else:
                for listener in tier:
                    results.append(
                        await self._call(
                            listener, event_name, payload, on_error, timeouts.get(priority)
                        )
                    )

        return results

    async def _call(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        on_error: ErrorHook,
        timeout: Optional[float] = None,
    ) -> Any:
        try:
            if asyncio.iscoroutinefunction(listener.callback):
                pending = listener.callback(payload)
            else:
                # Plain functions run off the loop.
                pending = asyncio.to_thread(listener.callback, payload)
            if timeout and timeout > 0:
                return await asyncio.wait_for(pending, timeout)
            return await pending
        except asyncio.TimeoutError:
            logger.error(
                "Event listener timed out",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": timeout,
                },
            )
        except Exception as exc:
            logger.error(
                "Event listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
        on_error(event_name)
        return None

    @property
    def pending(self) -> int:
        return len(self._detached)

    async def drain(self) -> None:
        """Wait for detached LOW listeners, including ones they schedule."""
        while self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)
