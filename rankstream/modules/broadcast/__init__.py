"""Live leaderboard fan-out: observer connections, heartbeat and the Redis relay."""

from .connection import CloseCode, ConnectionState, InvalidTransitionError, ObserverConnection
from .heartbeat import HeartbeatMonitor
from .hub import BroadcastHub
from .registry import ConnectionRegistry
from .relay import BroadcastRelay

__all__ = [
    "BroadcastHub",
    "BroadcastRelay",
    "CloseCode",
    "ConnectionRegistry",
    "ConnectionState",
    "HeartbeatMonitor",
    "InvalidTransitionError",
    "ObserverConnection",
]
