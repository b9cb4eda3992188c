"""In-process publish/subscribe for engine events.

Collaborators (alerting, reporting) subscribe at construction time,
either with a synchronous handler or with a bounded asyncio channel
that they drain from their own task.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from lineagelens.common.logging import get_logger
from lineagelens.common.metrics import EVENT_HANDLER_ERRORS, EVENTS_DROPPED, EVENTS_PUBLISHED

logger = get_logger(__name__)

WILDCARD = "*"


class EventType(str, Enum):
    """Events emitted by the lineage engine."""

    READY = "lineage:ready"
    STOPPED = "lineage:stopped"
    LINEAGE_TRACED = "lineage:traced"
    IMPACT_ANALYZED = "impact:analyzed"
    CHANGE_RECORDED = "change:recorded"
    HEALTH_ISSUES = "lineage:health_issues"
    STATISTICS_UPDATED = "statistics:updated"
    VISUALIZATION_GENERATED = "visualization:generated"
    REPORT_GENERATED = "report:generated"


@dataclass
class LineageEvent:
    """An event and the result object it carries."""

    event_type: EventType
    payload: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[LineageEvent], Any]


class EventBus:
    """Dispatches engine events to subscribed handlers and channels.

    Handlers run synchronously inside ``publish``. A failing handler is
    logged and counted; it never affects the publisher or other
    subscribers.

    Usage:
        bus = EventBus()
        bus.subscribe(EventType.HEALTH_ISSUES, alerting.on_health_issues)
        queue = bus.channel(EventType.CHANGE_RECORDED, maxsize=100)
    """

    def __init__(self, channel_max_size: int = 1000) -> None:
        """Initialize event bus.

        Args:
            channel_max_size: Default capacity of channels.
        """
        self._channel_max_size = channel_max_size
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._channels: dict[str, list[asyncio.Queue[LineageEvent]]] = defaultdict(list)
        self._published = 0

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Register a synchronous handler.

        Args:
            event_type: Event to receive, or ``"*"`` for all events.
            handler: Callable receiving the event.
        """
        key = _key(event_type)
        self._handlers[key].append(handler)
        logger.debug("Event handler subscribed", event_type=key)

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler) -> bool:
        """Remove a previously registered handler.

        Returns:
            True if the handler was registered.
        """
        handlers = self._handlers.get(_key(event_type), [])
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def channel(
        self,
        event_type: EventType | str,
        maxsize: int | None = None,
    ) -> asyncio.Queue[LineageEvent]:
        """Create a bounded channel receiving an event type.

        When the channel is full the oldest event is dropped to make
        room for the newest one.

        Args:
            event_type: Event to receive, or ``"*"`` for all events.
            maxsize: Channel capacity. Uses bus default if not provided.

        Returns:
            Queue to consume events from.
        """
        queue: asyncio.Queue[LineageEvent] = asyncio.Queue(
            maxsize=maxsize or self._channel_max_size
        )
        self._channels[_key(event_type)].append(queue)
        return queue

    def publish(self, event_type: EventType, payload: Any) -> LineageEvent:
        """Publish an event to all subscribers.

        Args:
            event_type: Type of event.
            payload: Result object carried by the event.

        Returns:
            The published event.
        """
        event = LineageEvent(event_type=event_type, payload=payload)
        key = _key(event_type)
        self._published += 1
        EVENTS_PUBLISHED.labels(event_type=key).inc()

        for handler in self._handlers.get(key, []) + self._handlers.get(WILDCARD, []):
            try:
                handler(event)
            except Exception as e:
                EVENT_HANDLER_ERRORS.labels(event_type=key).inc()
                logger.error(
                    "Event handler failed",
                    event_type=key,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    error=str(e),
                )

        for queue in self._channels.get(key, []) + self._channels.get(WILDCARD, []):
            self._offer(queue, event)

        return event

    @property
    def stats(self) -> dict[str, Any]:
        """Get bus statistics."""
        return {
            "published": self._published,
            "handlers": sum(len(h) for h in self._handlers.values()),
            "channels": sum(len(c) for c in self._channels.values()),
        }

    def _offer(self, queue: asyncio.Queue[LineageEvent], event: LineageEvent) -> None:
        """Put an event on a channel, dropping the oldest when full."""
        if queue.full():
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            EVENTS_DROPPED.labels(event_type=_key(event.event_type)).inc()
            logger.warning("Event channel full, dropped oldest event", event_type=_key(event.event_type))
        queue.put_nowait(event)


def _key(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else event_type
