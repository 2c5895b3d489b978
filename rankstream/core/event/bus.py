"""
In-process publish/subscribe.

The score mutator publishes ``scores.delta_applied`` once a change has
committed; the broadcast hub listens and fans it out. Subscriptions may use
wildcards (``scores.*``). Timeouts for the CRITICAL and HIGH tiers come from
``event_bus.critical_timeout_seconds`` / ``event_bus.high_timeout_seconds``
unless the bus was built with explicit values.
"""

from __future__ import annotations

import inspect
from collections import Counter
from typing import Any, Optional

from rankstream.core.config.manager import ConfigManager
from rankstream.core.event.registry import ListenerRegistry
from rankstream.core.event.scheduler import EventScheduler
from rankstream.core.event.types import (
    CallbackType,
    EventPayload,
    ListenerPriority,
    build_listener,
)
from rankstream.core.logging.logger import get_logger, set_log_context

logger = get_logger(__name__)

_TIMEOUT_KEYS = {
    ListenerPriority.CRITICAL: ("event_bus.critical_timeout_seconds", 5.0),
    ListenerPriority.HIGH: ("event_bus.high_timeout_seconds", 10.0),
}


class EventMetricsRecorder:
    """Publish and failure counts per event name."""

    def __init__(self) -> None:
        self.published: Counter[str] = Counter()
        self.failed: Counter[str] = Counter()

    def record_publish(self, event_name: str) -> None:
        self.published[event_name] += 1

    def record_error(self, event_name: str) -> None:
        self.failed[event_name] += 1

    def summary(self, listener_count: int) -> dict[str, Any]:
        return {
            "total_events_published": sum(self.published.values()),
            "events_by_type": dict(self.published),
            "total_errors": sum(self.failed.values()),
            "errors_by_event": dict(self.failed),
            "total_listeners": listener_count,
        }


class EventBus:
    """
    >>> bus = EventBus()
    >>> bus.subscribe("scores.delta_applied", on_delta, priority=ListenerPriority.LOW)
    >>> await bus.publish("scores.delta_applied", {"participant_id": "p-1"})
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        scheduler: Optional[EventScheduler] = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._registry = registry or ListenerRegistry()
        self._scheduler = scheduler or EventScheduler()
        self._metrics = EventMetricsRecorder()
        self._timeout_overrides = {
            ListenerPriority.CRITICAL: critical_timeout_seconds,
            ListenerPriority.HIGH: high_timeout_seconds,
        }

    def _timeouts(self) -> dict[ListenerPriority, Optional[float]]:
        resolved: dict[ListenerPriority, Optional[float]] = {}
        for priority, (key, default) in _TIMEOUT_KEYS.items():
            override = self._timeout_overrides[priority]
            if override is not None:
                resolved[priority] = override
                continue
            try:
                resolved[priority] = float(ConfigManager.get(key, default))
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric %s", key)
                resolved[priority] = default
        return resolved

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Register ``callback`` for an event name or wildcard pattern and
        return the identifier to unsubscribe with.

        Raises:
            ValueError: The callback does not take exactly one argument.
        """
        try:
            arity = len(inspect.signature(callback).parameters)
        except (TypeError, ValueError):
            arity = 1  # builtins without an introspectable signature
        if arity != 1:
            raise ValueError(
                f"Event listener {getattr(callback, '__qualname__', callback)!r} "
                f"must take exactly one payload argument, takes {arity}"
            )

        listener = build_listener(event_name, callback, priority, identifier, once)
        if self._registry.add(listener, allow_duplicates=allow_duplicates):
            logger.debug(
                "Listener subscribed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": priority.name,
                },
            )
        else:
            logger.warning(
                "Duplicate listener ignored",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        return self._registry.remove(event_name, identifier)

    def clear(self) -> None:
        dropped = self._registry.clear()
        logger.info("All listeners removed", extra={"listener_count": dropped})

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Deliver ``data`` to every matching listener.

        Returns the results of the awaited tiers (CRITICAL, HIGH, NORMAL),
        with ``None`` in place of any listener that failed.
        """
        self._metrics.record_publish(event_name)
        set_log_context(event_name=event_name)

        listeners = self._registry.take(event_name)
        if not listeners:
            return []

        logger.debug(
            "Publishing event",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )
        return await self._scheduler.execute(
            event_name,
            data,
            listeners,
            timeouts=self._timeouts(),
            on_error=self._metrics.record_error,
        )

    async def drain(self) -> None:
        """Wait for LOW-tier listeners still running from earlier publishes."""
        await self._scheduler.drain()

    def get_metrics_summary(self) -> dict[str, Any]:
        return self._metrics.summary(len(self._registry))

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is None:
            return len(self._registry)
        return len(self._registry.matching(event_name))
