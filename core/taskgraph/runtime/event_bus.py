"""
Event Bus - Pub/sub for task graph lifecycle events.

The activity feed subscribes here to render which graphs and nodes ran,
finished, or failed, without polling the registry.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events that can be published."""

    # Graph lifecycle
    GRAPH_CREATED = "graph_created"
    GRAPH_STARTED = "graph_started"
    GRAPH_COMPLETED = "graph_completed"
    GRAPH_FAILED = "graph_failed"
    GRAPH_DELETED = "graph_deleted"

    # Node lifecycle
    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    NODE_FAILED = "node_failed"
    NODE_SKIPPED = "node_skipped"


@dataclass
class TaskGraphEvent:
    """An event in the executor."""

    type: EventType
    graph_id: str
    node_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "graph_id": self.graph_id,
            "node_id": self.node_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event handlers
EventHandler = Callable[[TaskGraphEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_graph: str | None = None  # Only receive events from this graph
    filter_node: str | None = None  # Only receive events from this node


class EventBus:
    """
    Pub/sub event bus for graph and node lifecycle.

    Example:
        bus = EventBus()

        async def on_failure(event: TaskGraphEvent):
            print(f"{event.node_id} failed: {event.data['error']}")

        bus.subscribe(event_types=[EventType.NODE_FAILED], handler=on_failure)
    """

    def __init__(self, max_history: int = 1000, max_concurrent_handlers: int = 10):
        """
        Initialize event bus.

        Args:
            max_history: Maximum events to keep in history
            max_concurrent_handlers: Maximum concurrent handler executions
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: list[TaskGraphEvent] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._events_by_type: dict[str, int] = {}

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_graph: str | None = None,
        filter_node: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Returns:
            Subscription ID (use to unsubscribe)
        """
        sub_id = f"sub_{uuid.uuid4().hex[:8]}"
        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_graph=filter_graph,
            filter_node=filter_node,
        )
        logger.debug(f"Subscription {sub_id} registered for {[str(t) for t in event_types]}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Unsubscribe from events. Returns True if the subscription existed."""
        return self._subscriptions.pop(subscription_id, None) is not None

    async def publish(self, event: TaskGraphEvent) -> None:
        """Publish an event to all matching subscribers."""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history :]
        self._events_by_type[event.type.value] = self._events_by_type.get(event.type.value, 0) + 1

        matching_handlers = [
            sub.handler for sub in self._subscriptions.values() if self._matches(sub, event)
        ]
        if matching_handlers:
            await self._execute_handlers(event, matching_handlers)

    def _matches(self, subscription: Subscription, event: TaskGraphEvent) -> bool:
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_graph and subscription.filter_graph != event.graph_id:
            return False
        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False
        return True

    async def _execute_handlers(
        self,
        event: TaskGraphEvent,
        handlers: list[EventHandler],
    ) -> None:
        """Execute handlers concurrently; a failing handler never breaks execution."""

        async def run_handler(handler: EventHandler) -> None:
            async with self._semaphore:
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(f"Handler error for {event.type}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers])

    # === CONVENIENCE PUBLISHERS ===

    async def emit_graph_event(
        self,
        event_type: EventType,
        graph_id: str,
        **data: Any,
    ) -> None:
        await self.publish(TaskGraphEvent(type=event_type, graph_id=graph_id, data=data))

    async def emit_node_event(
        self,
        event_type: EventType,
        graph_id: str,
        node_id: str,
        **data: Any,
    ) -> None:
        await self.publish(
            TaskGraphEvent(type=event_type, graph_id=graph_id, node_id=node_id, data=data)
        )

    # === QUERY ===

    def get_history(
        self,
        event_type: EventType | None = None,
        graph_id: str | None = None,
        limit: int = 100,
    ) -> list[TaskGraphEvent]:
        """Get recent events, newest last."""
        events = [
            e
            for e in self._event_history
            if (event_type is None or e.type == event_type)
            and (graph_id is None or e.graph_id == graph_id)
        ]
        return events[-limit:]

    def get_stats(self) -> dict:
        return {
            "total_events": sum(self._events_by_type.values()),
            "events_by_type": dict(self._events_by_type),
            "subscriptions": len(self._subscriptions),
            "history_size": len(self._event_history),
        }
