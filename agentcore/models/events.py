"""Event bus data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class EventType(str, Enum):
    """Event types published on the EventBus."""

    AGENT_STARTED = "agent:started"
    AGENT_COMPLETED = "agent:completed"
    AGENT_FAILED = "agent:failed"
    AGENT_STATUS = "agent:status"
    AGENT_RELOADED = "agent:reloaded"
    AGENT_RELOAD_FAILED = "agent:reload-failed"
    WORKFLOW_STARTED = "workflow:started"
    WORKFLOW_STEP_COMPLETED = "workflow:step:completed"
    WORKFLOW_COMPLETED = "workflow:completed"
    WORKFLOW_FAILED = "workflow:failed"
    LOG = "log"


@dataclass
class Event:
    """A typed event. ``type`` is an EventType or a custom string from agent logic."""

    type: EventType | str
    data: dict  # varies by type
    source: str  # component that published
    agent_id: str | None = None
    execution_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
