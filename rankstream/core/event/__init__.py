"""
Event system for Rankstream.

``event_bus`` is the process-wide bus; tests and multi-hub setups build
their own ``EventBus`` instances.
"""

from .bus import EventBus, EventMetricsRecorder
from .registry import ListenerRegistry
from .router import EventRouter
from .scheduler import EventScheduler
from .types import CallbackType, EventListener, EventPayload, ListenerPriority

event_bus = EventBus()

__all__ = [
    "event_bus",
    "EventBus",
    "EventMetricsRecorder",
    "EventPayload",
    "EventListener",
    "EventRouter",
    "EventScheduler",
    "ListenerPriority",
    "ListenerRegistry",
    "CallbackType",
]
