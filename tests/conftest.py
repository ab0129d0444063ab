"""Pytest configuration and fixtures."""

from unittest.mock import AsyncMock, Mock

import fakeredis
import pytest
import pytest_asyncio

from agentcore.agent import agent as agent_module
from agentcore.llm import LLMResponse
from agentcore.models import BackoffOptions, JobOptions, TaskQueueConfig, TokenUsage


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from agentcore.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def event_bus():
    """Create an empty EventBus."""
    from agentcore.event_bus import EventBus

    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Collect every event published on the bus."""
    events = []

    async def record(event):
        events.append(event)

    event_bus.subscribe_all(record)
    return events


@pytest.fixture
def runtime(event_bus):
    """Create AgentRuntime sharing the test event bus."""
    from agentcore.agent import AgentRuntime

    return AgentRuntime(event_bus=event_bus)


@pytest.fixture
def tracker(storage, event_bus):
    """Create Tracker with storage and event bus."""
    from agentcore.tracker import Tracker

    return Tracker(event_bus=event_bus, store=storage)


@pytest.fixture
def no_backoff(monkeypatch):
    """Make agent retries immediate."""
    monkeypatch.setattr(agent_module, "calculate_backoff", lambda attempt: 0)


@pytest.fixture
def queue_config():
    """Fast-polling queue config with short fixed backoff."""
    return TaskQueueConfig(
        default_job_options=JobOptions(
            attempts=3,
            backoff=BackoffOptions(type="fixed", delay=10),
            remove_on_complete=100,
            remove_on_fail=50,
        ),
        concurrency=4,
        poll_interval=0.01,
    )


@pytest_asyncio.fixture
async def redis_client():
    """In-process fake Redis."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def task_queue(redis_client, queue_config):
    """TaskQueue backed by fake Redis."""
    from agentcore.queue import TaskQueue

    queue = TaskQueue("test-queue", queue_config, redis_client=redis_client)
    yield queue
    await queue.close()


@pytest.fixture
def mock_llm():
    """Create mock LLM provider."""
    llm = Mock()
    llm.name = "mock"
    llm.chat = AsyncMock(
        return_value=LLMResponse(
            content="Test response",
            token_usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )
    )
    return llm
