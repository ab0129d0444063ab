"""EventBus module."""

from .event_bus import EventBus, EventBusLogHandler, EventHandler, IEventBus

__all__ = ["EventBus", "EventBusLogHandler", "EventHandler", "IEventBus"]
