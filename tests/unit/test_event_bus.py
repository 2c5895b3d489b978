"""
Unit tests for the EventBus.

Tests priority tiers, wildcard routing, listener isolation and LOW-tier
background delivery.
"""

import asyncio

import pytest

from rankstream.core.event.bus import EventBus
from rankstream.core.event.router import EventRouter
from rankstream.core.event.types import ListenerPriority

pytestmark = pytest.mark.unit


class TestRouting:
    """Test event name pattern matching."""

    @pytest.mark.parametrize(
        "event_name,pattern,expected",
        [
            ("scores.delta_applied", "scores.delta_applied", True),
            ("scores.delta_applied", "*", True),
            ("scores.delta_applied", "scores.*", True),
            ("ranking.cache_invalidated", "scores.*", False),
            ("scores.delta_applied", "*.delta_applied", True),
        ],
    )
    def test_patterns(self, event_name, pattern, expected):
        assert EventRouter().matches(event_name, pattern) is expected


class TestPublish:
    """Test delivery and ordering."""

    async def test_no_listeners_returns_empty(self, event_bus):
        assert await event_bus.publish("scores.delta_applied", {}) == []

    async def test_priorities_run_in_order(self, event_bus):
        """CRITICAL runs before HIGH, which runs before NORMAL."""
        order = []

        async def normal(payload):
            order.append("normal")

        async def high(payload):
            order.append("high")

        async def critical(payload):
            order.append("critical")

        event_bus.subscribe("e", normal, priority=ListenerPriority.NORMAL)
        event_bus.subscribe("e", high, priority=ListenerPriority.HIGH)
        event_bus.subscribe("e", critical, priority=ListenerPriority.CRITICAL)

        await event_bus.publish("e", {})

        assert order == ["critical", "high", "normal"]

    async def test_wildcard_listener_receives_event(self, event_bus):
        received = []

        async def on_any(payload):
            received.append(payload["n"])

        event_bus.subscribe("scores.*", on_any)
        await event_bus.publish("scores.delta_applied", {"n": 1})

        assert received == [1]

    async def test_failing_listener_is_isolated(self, event_bus):
        """One failing listener neither stops others nor reaches the publisher."""

        async def broken(payload):
            raise RuntimeError("boom")

        async def healthy(payload):
            return "ok"

        event_bus.subscribe("e", broken, identifier="broken")
        event_bus.subscribe("e", healthy, identifier="healthy")

        results = await event_bus.publish("e", {})

        assert sorted(results, key=str) == [None, "ok"]
        assert event_bus.get_metrics_summary()["total_errors"] == 1

    async def test_once_listener_fires_once(self, event_bus):
        calls = []

        async def once(payload):
            calls.append(payload)

        event_bus.subscribe("e", once, once=True)
        await event_bus.publish("e", {})
        await event_bus.publish("e", {})

        assert len(calls) == 1

    async def test_low_priority_runs_in_background(self, event_bus):
        """LOW listeners do not hold up publish; drain waits for them."""
        release = asyncio.Event()
        done = []

        async def slow(payload):
            await release.wait()
            done.append(True)

        event_bus.subscribe("e", slow, priority=ListenerPriority.LOW)

        results = await event_bus.publish("e", {})
        assert results == []
        assert done == []

        release.set()
        await event_bus.drain()
        assert done == [True]

    async def test_high_listener_timeout_records_error(self):
        bus = EventBus(high_timeout_seconds=0.01)

        async def stuck(payload):
            await asyncio.sleep(1)

        bus.subscribe("e", stuck, priority=ListenerPriority.HIGH)

        assert await bus.publish("e", {}) == [None]
        assert bus.get_metrics_summary()["total_errors"] == 1


class TestSubscription:
    """Test subscribe/unsubscribe bookkeeping."""

    def test_callback_must_take_one_argument(self, event_bus):
        async def bad(a, b):
            return None

        with pytest.raises(ValueError):
            event_bus.subscribe("e", bad)

    def test_duplicate_identifier_ignored(self, event_bus):
        async def listener(payload):
            return None

        event_bus.subscribe("e", listener, identifier="same")
        event_bus.subscribe("e", listener, identifier="same")

        assert event_bus.get_listener_count("e") == 1

    async def test_unsubscribe_stops_delivery(self, event_bus):
        calls = []

        async def listener(payload):
            calls.append(payload)

        listener_id = event_bus.subscribe("e", listener)
        assert event_bus.unsubscribe("e", listener_id) is True

        await event_bus.publish("e", {})
        assert calls == []
