"""Listener tiers and registration records for the EventBus."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class ListenerPriority(IntEnum):
    """
    Lower runs first.

    CRITICAL and HIGH run one at a time under a timeout, NORMAL runs
    concurrently, LOW is detached from the publisher entirely.
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


@dataclass(frozen=True)
class EventListener:
    pattern: str
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.priority, self.identifier)


def default_identifier(callback: CallbackType, pattern: str) -> str:
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", "callback")
    return f"{getattr(callback, '__module__', '?')}.{name}@{pattern}"


def build_listener(
    pattern: str,
    callback: CallbackType,
    priority: ListenerPriority,
    identifier: Optional[str] = None,
    once: bool = False,
) -> EventListener:
    return EventListener(
        pattern=pattern,
        callback=callback,
        priority=priority,
        identifier=identifier or default_identifier(callback, pattern),
        once=once,
    )
