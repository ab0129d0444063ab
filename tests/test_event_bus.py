"""Tests for EventBus."""

import asyncio
import logging

import pytest

from agentcore.event_bus import EventBusLogHandler
from agentcore.logging_config import get_logger
from agentcore.models import Event, EventType


def make_event(event_type=EventType.AGENT_COMPLETED, **data) -> Event:
    return Event(type=event_type, data=data, source="test")


class TestEventBusSubscribe:
    """Tests for EventBus subscription."""

    def test_subscribe_single_handler(self, event_bus):
        """Test subscribing a single handler."""

        async def handler(event):
            pass

        event_bus.subscribe(EventType.AGENT_STARTED, handler)
        assert event_bus.handler_count(EventType.AGENT_STARTED) == 1

    def test_subscribe_multiple_handlers(self, event_bus):
        """Test subscribing multiple handlers to same event type."""

        async def handler1(event):
            pass

        async def handler2(event):
            pass

        event_bus.subscribe(EventType.AGENT_STARTED, handler1)
        event_bus.subscribe("agent:started", handler2)

        assert event_bus.handler_count(EventType.AGENT_STARTED) == 2

    def test_unsubscribe(self, event_bus):
        """Unsubscribed handlers are removed; unknown ones are ignored."""

        async def handler(event):
            pass

        event_bus.subscribe(EventType.LOG, handler)
        event_bus.unsubscribe(EventType.LOG, handler)
        event_bus.unsubscribe(EventType.LOG, handler)

        assert event_bus.handler_count(EventType.LOG) == 0


class TestEventBusPublish:
    """Tests for EventBus publishing."""

    async def test_publish_single_subscriber(self, event_bus):
        """Test publishing to a single subscriber."""
        calls = []

        async def handler(event):
            calls.append(event)

        event_bus.subscribe(EventType.AGENT_COMPLETED, handler)
        event = make_event(value=1)

        await event_bus.publish(event)

        assert calls == [event]

    async def test_publish_only_matching_type(self, event_bus):
        """Handlers only see their event type."""
        calls = []

        async def handler(event):
            calls.append(event)

        event_bus.subscribe(EventType.AGENT_FAILED, handler)
        await event_bus.publish(make_event(EventType.AGENT_COMPLETED))

        assert calls == []

    async def test_wildcard_subscriber_sees_everything(self, event_bus):
        """subscribe_all receives every event."""
        calls = []

        async def handler(event):
            calls.append(event.type)

        event_bus.subscribe_all(handler)
        await event_bus.publish(make_event(EventType.AGENT_STARTED))
        await event_bus.publish(make_event("custom"))

        assert calls == [EventType.AGENT_STARTED, "custom"]

    async def test_handlers_run_concurrently(self, event_bus):
        """Handlers are gathered, not run one after another."""
        started = asyncio.Event()
        order = []

        async def waiter(event):
            await asyncio.wait_for(started.wait(), timeout=1)
            order.append("waiter")

        async def starter(event):
            order.append("starter")
            started.set()

        event_bus.subscribe(EventType.LOG, waiter)
        event_bus.subscribe(EventType.LOG, starter)

        await event_bus.publish(make_event(EventType.LOG))

        assert order == ["starter", "waiter"]

    async def test_handler_error_does_not_propagate(self, event_bus, caplog):
        """A failing handler is logged and the others still run."""
        calls = []

        async def bad(event):
            raise RuntimeError("handler failed")

        async def good(event):
            calls.append(event)

        event_bus.subscribe(EventType.AGENT_COMPLETED, bad)
        event_bus.subscribe(EventType.AGENT_COMPLETED, good)

        with caplog.at_level(logging.ERROR, logger="agentcore.event_bus.event_bus"):
            await event_bus.publish(make_event())

        assert len(calls) == 1
        assert "handler failed" in caplog.text

    async def test_publish_nowait(self, event_bus):
        """publish_nowait schedules delivery on the running loop."""
        calls = []

        async def handler(event):
            calls.append(event)

        event_bus.subscribe(EventType.LOG, handler)
        event_bus.publish_nowait(make_event(EventType.LOG))
        assert calls == []

        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert len(calls) == 1

    def test_publish_nowait_without_loop_is_noop(self, event_bus):
        """Outside a running loop nothing is scheduled."""
        event_bus.publish_nowait(make_event(EventType.LOG))

    async def test_clear(self, event_bus):
        """clear() removes all subscribers."""

        async def handler(event):
            pass

        event_bus.subscribe(EventType.LOG, handler)
        event_bus.subscribe_all(handler)
        event_bus.clear()

        assert event_bus.handler_count() == 0


class TestEventBusLogHandler:
    """Tests for EventBusLogHandler."""

    async def test_log_records_become_events(self, event_bus):
        """agentcore log records are republished as log events."""
        received = []

        async def handler(event):
            received.append(event)

        event_bus.subscribe(EventType.LOG, handler)
        log_handler = EventBusLogHandler(event_bus)
        log_handler.attach()
        logger = get_logger("agentcore.tests.sample")
        logger.setLevel(logging.INFO)
        try:
            logger.info(
                "hello %s", "world", extra={"context": {"agent_id": "a1", "execution_id": "e1"}}
            )
            await asyncio.sleep(0)
            await asyncio.sleep(0)
        finally:
            log_handler.detach()

        assert len(received) == 1
        event = received[0]
        assert event.data["level"] == "info"
        assert event.data["message"] == "hello world"
        assert event.data["logger"] == "agentcore.tests.sample"
        assert event.agent_id == "a1"
        assert event.execution_id == "e1"

    async def test_detached_handler_publishes_nothing(self, event_bus):
        """After detach() records are no longer forwarded."""
        received = []

        async def handler(event):
            received.append(event)

        event_bus.subscribe(EventType.LOG, handler)
        log_handler = EventBusLogHandler(event_bus)
        log_handler.attach()
        log_handler.detach()

        logger = get_logger("agentcore.tests.detached")
        logger.setLevel(logging.INFO)
        logger.info("ignored")
        await asyncio.sleep(0)

        assert received == []
