"""Tests for the event bus."""

import pytest

from mechevolve.events.bus import Event, EventBus


@pytest.mark.asyncio
async def test_emit_and_subscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("agent.created", handler)
    await bus.emit("agent.created", {"agent_id": "a1"}, source="agent_factory")

    assert len(received) == 1
    assert received[0].topic == "agent.created"
    assert received[0].data["agent_id"] == "a1"
    assert received[0].source == "agent_factory"


@pytest.mark.asyncio
async def test_wildcard_subscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("evolution.*", handler)
    await bus.emit("evolution.tracked", {"evolution_id": "e1"})
    await bus.emit("evolution.applied", {"suggestion_id": "s1"})
    await bus.emit("agent.created", {"agent_id": "a1"})  # should NOT match

    assert len(received) == 2


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("*", handler)
    assert bus.subscriber_count == 1
    await bus.emit("agent.created")
    bus.unsubscribe("*", handler)
    await bus.emit("agent.created")

    assert len(received) == 1
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_emit():
    bus = EventBus()
    received = []

    async def broken(event: Event):
        raise RuntimeError("boom")

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("*", broken)
    bus.subscribe("*", handler)
    event = await bus.emit("evolution.tracked")

    assert event.topic == "evolution.tracked"
    assert len(received) == 1


@pytest.mark.asyncio
async def test_history_is_bounded_and_newest_first():
    bus = EventBus(history_limit=3)
    for i in range(5):
        await bus.emit("evolution.tracked", {"n": i})
    await bus.emit("agent.created")

    assert [e.data.get("n") for e in bus.history()] == [None, 4, 3]
    assert [e.data["n"] for e in bus.history("evolution.*")] == [4, 3]
    assert len(bus.history(limit=1)) == 1
