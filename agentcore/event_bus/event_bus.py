"""EventBus implementation for pub/sub messaging."""

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

from ..logging_config import ROOT_LOGGER_NAME, get_logger
from ..models import Event, EventType

logger = get_logger(__name__)


EventHandler = Callable[[Event], Awaitable[None]]


class IEventBus(Protocol):
    """In-process pub/sub for exchanging Events."""

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type."""
        ...

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to every event."""
        ...

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Remove a handler from an event type."""
        ...

    async def publish(self, event: Event) -> None:
        """Publish an Event: calls subscriber callbacks concurrently."""
        ...

    def publish_nowait(self, event: Event) -> None:
        """Schedule publication on the running loop without awaiting it."""
        ...

    def clear(self) -> None:
        """Detach every subscriber."""
        ...


def _key(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else event_type


class EventBus:
    """In-memory pub/sub event bus."""

    def __init__(self):
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._wildcard: list[EventHandler] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type."""
        self._subscribers.setdefault(_key(event_type), []).append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to every event."""
        self._wildcard.append(handler)

    def unsubscribe(self, event_type: EventType | str, handler: EventHandler) -> None:
        """Remove a handler from an event type."""
        handlers = self._subscribers.get(_key(event_type), [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event_type: EventType | str | None = None) -> int:
        if event_type is None:
            return sum(len(h) for h in self._subscribers.values()) + len(self._wildcard)
        return len(self._subscribers.get(_key(event_type), []))

    async def publish(self, event: Event) -> None:
        """Publish an Event: calls subscriber callbacks concurrently."""
        handlers = [*self._subscribers.get(_key(event.type), []), *self._wildcard]
        if not handlers:
            return

        results = await asyncio.gather(
            *[handler(event) for handler in handlers],
            return_exceptions=True,
        )

        # Handler failures never reach the publisher
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Error in handler %s for %s: %s",
                    getattr(handler, "__qualname__", handler),
                    _key(event.type),
                    result,
                )

    def publish_nowait(self, event: Event) -> None:
        """Schedule publication on the running loop without awaiting it."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.publish(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def clear(self) -> None:
        """Detach every subscriber."""
        self._subscribers.clear()
        self._wildcard.clear()


class EventBusLogHandler(logging.Handler):
    """Republishes agentcore log records as ``log`` events."""

    def __init__(self, event_bus: IEventBus, level: int = logging.INFO):
        super().__init__(level)
        self._event_bus = event_bus

    def emit(self, record: logging.LogRecord) -> None:
        # Records about event delivery itself would loop back onto the bus
        if record.name == __name__:
            return
        try:
            context = getattr(record, "context", {}) or {}
            self._event_bus.publish_nowait(
                Event(
                    type=EventType.LOG,
                    data={
                        "level": record.levelname.lower(),
                        "message": record.getMessage(),
                        "logger": record.name,
                        "metadata": context,
                    },
                    source=record.name,
                    agent_id=context.get("agent_id"),
                    execution_id=context.get("execution_id"),
                )
            )
        except Exception:
            self.handleError(record)

    def attach(self) -> None:
        logging.getLogger(ROOT_LOGGER_NAME).addHandler(self)

    def detach(self) -> None:
        logging.getLogger(ROOT_LOGGER_NAME).removeHandler(self)
