"""Tests for EventBus subscription, filtering and history."""

import pytest

from taskgraph.runtime.event_bus import EventBus, EventType, TaskGraphEvent


@pytest.mark.asyncio
async def test_subscribers_receive_matching_events():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append((event.type, event.node_id))

    bus.subscribe(event_types=[EventType.NODE_FAILED], handler=handler)

    await bus.emit_node_event(EventType.NODE_COMPLETED, "graph_1", "a")
    await bus.emit_node_event(EventType.NODE_FAILED, "graph_1", "b", error="boom")

    assert received == [(EventType.NODE_FAILED, "b")]


@pytest.mark.asyncio
async def test_graph_and_node_filters():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event.node_id)

    bus.subscribe(
        event_types=[EventType.NODE_STARTED],
        handler=handler,
        filter_graph="graph_1",
        filter_node="a",
    )

    await bus.emit_node_event(EventType.NODE_STARTED, "graph_1", "a")
    await bus.emit_node_event(EventType.NODE_STARTED, "graph_1", "b")
    await bus.emit_node_event(EventType.NODE_STARTED, "graph_2", "a")

    assert received == ["a"]


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event)

    sub_id = bus.subscribe(event_types=[EventType.GRAPH_CREATED], handler=handler)
    assert bus.unsubscribe(sub_id) is True
    assert bus.unsubscribe(sub_id) is False

    await bus.emit_graph_event(EventType.GRAPH_CREATED, "graph_1")

    assert received == []


@pytest.mark.asyncio
async def test_failing_handler_does_not_break_publish():
    bus = EventBus()
    received = []

    async def broken(event):
        raise RuntimeError("handler bug")

    async def healthy(event):
        received.append(event.graph_id)

    bus.subscribe(event_types=[EventType.GRAPH_COMPLETED], handler=broken)
    bus.subscribe(event_types=[EventType.GRAPH_COMPLETED], handler=healthy)

    await bus.emit_graph_event(EventType.GRAPH_COMPLETED, "graph_1")

    assert received == ["graph_1"]


@pytest.mark.asyncio
async def test_history_is_bounded_and_filterable():
    bus = EventBus(max_history=3)

    for i in range(5):
        await bus.emit_graph_event(EventType.GRAPH_CREATED, f"graph_{i}")
    await bus.emit_node_event(EventType.NODE_SKIPPED, "graph_4", "x", reason="branch not taken")

    history = bus.get_history()
    assert [e.graph_id for e in history] == ["graph_3", "graph_4", "graph_4"]
    assert [e.node_id for e in bus.get_history(EventType.NODE_SKIPPED)] == ["x"]
    assert len(bus.get_history(graph_id="graph_4")) == 2

    stats = bus.get_stats()
    assert stats["total_events"] == 6
    assert stats["events_by_type"] == {"graph_created": 5, "node_skipped": 1}
    assert stats["history_size"] == 3


def test_event_to_dict():
    event = TaskGraphEvent(
        type=EventType.NODE_FAILED, graph_id="graph_1", node_id="a", data={"error": "boom"}
    )

    data = event.to_dict()

    assert data["type"] == "node_failed"
    assert data["node_id"] == "a"
    assert data["data"] == {"error": "boom"}
    assert "timestamp" in data
