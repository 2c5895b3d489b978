"""
Listener storage.

Listeners are kept per pattern; exact names and wildcards live side by side
and ``EventRouter`` decides which patterns an event name hits. Only touched
from the event loop thread, so no locking.
"""

from __future__ import annotations

from typing import Optional

from rankstream.core.event.router import EventRouter
from rankstream.core.event.types import EventListener


class ListenerRegistry:
    def __init__(self, router: Optional[EventRouter] = None) -> None:
        self._router = router or EventRouter()
        self._by_pattern: dict[str, list[EventListener]] = {}

    def add(self, listener: EventListener, *, allow_duplicates: bool = False) -> bool:
        """False when a listener with the same identifier already holds the pattern."""
        bucket = self._by_pattern.setdefault(listener.pattern, [])
        if not allow_duplicates and any(l.identifier == listener.identifier for l in bucket):
            return False
        bucket.append(listener)
        return True

    def remove(self, pattern: str, identifier: str) -> bool:
        bucket = self._by_pattern.get(pattern, [])
        kept = [l for l in bucket if l.identifier != identifier]
        if len(kept) == len(bucket):
            return False
        if kept:
            self._by_pattern[pattern] = kept
        else:
            del self._by_pattern[pattern]
        return True

    def clear(self) -> int:
        total = len(self)
        self._by_pattern.clear()
        return total

    def matching(self, event_name: str) -> list[EventListener]:
        found = [
            listener
            for pattern, bucket in self._by_pattern.items()
            if self._router.matches(event_name, pattern)
            for listener in bucket
        ]
        return sorted(found, key=lambda l: l.sort_key)

    def take(self, event_name: str) -> list[EventListener]:
        """
        Listeners for ``event_name`` in run order.

        One-shot listeners are unregistered here, before anything runs, so
        overlapping publishes cannot fire them twice.
        """
        listeners = self.matching(event_name)
        for listener in listeners:
            if listener.once:
                self.remove(listener.pattern, listener.identifier)
        return listeners

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._by_pattern.values())
