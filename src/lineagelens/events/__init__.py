"""Engine event publishing."""

from lineagelens.events.bus import EventBus, EventType, LineageEvent

__all__ = [
    "EventBus",
    "EventType",
    "LineageEvent",
]
