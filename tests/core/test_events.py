"""Tests for the in-memory event bus."""

import pytest

from retryline.core.events import Event
from retryline.core.events.memory import InMemoryEventBus


def _event(event_type="retry.notifications", **payload):
    return Event(event_type=event_type, source="test", payload=payload)


class TestEvent:
    def test_defaults(self):
        event = _event()
        assert event.event_id
        assert event.timestamp.tzinfo is not None
        assert event.correlation_id is None


class TestInMemoryEventBus:
    @pytest.mark.asyncio
    async def test_exact_and_wildcard_subscriptions(self):
        bus = InMemoryEventBus()
        exact, prefix, everything = [], [], []

        async def on_exact(e):
            exact.append(e)

        async def on_prefix(e):
            prefix.append(e)

        async def on_all(e):
            everything.append(e)

        await bus.subscribe("retry.notifications", on_exact)
        await bus.subscribe("retry.*", on_prefix)
        await bus.subscribe("*", on_all)

        await bus.publish(_event())
        await bus.publish(_event("retry.other"))
        await bus.publish(_event("billing.charged"))

        assert len(exact) == 1
        assert len(prefix) == 2
        assert len(everything) == 3

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = InMemoryEventBus()
        received = []

        async def handler(e):
            received.append(e)

        sub_id = await bus.subscribe("retry.*", handler)
        await bus.unsubscribe(sub_id)
        await bus.publish(_event())

        assert received == []
        assert bus.subscription_count == 0

    @pytest.mark.asyncio
    async def test_handler_error_does_not_block_others(self):
        bus = InMemoryEventBus()
        received = []

        async def broken(e):
            raise RuntimeError("boom")

        async def healthy(e):
            received.append(e)

        await bus.subscribe("retry.*", broken)
        await bus.subscribe("retry.*", healthy)
        await bus.publish(_event())

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_closed_bus_drops_events(self):
        bus = InMemoryEventBus()
        received = []

        async def handler(e):
            received.append(e)

        await bus.subscribe("*", handler)
        await bus.close()
        await bus.publish(_event())

        assert received == []
        assert bus.subscription_count == 0
