"""Task queue data models."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"


@dataclass
class TaskQueueItem:
    """A unit of work submitted to the queue. ``type`` is the routing key."""

    type: str
    payload: dict
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    priority: int | None = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "payload": self.payload,
            "priority": self.priority,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaskQueueItem":
        return cls(
            id=data["id"],
            type=data["type"],
            payload=data.get("payload") or {},
            priority=data.get("priority"),
            timestamp=data["timestamp"],
        )


@dataclass
class Job:
    """Queue-side record of a submitted item."""

    id: str
    name: str
    item: TaskQueueItem
    state: JobState
    priority: int
    attempts_made: int
    max_attempts: int
    created_at: int  # epoch ms
    processed_at: int | None = None
    finished_at: int | None = None
    failed_reason: str | None = None
    return_value: Any = None


@dataclass(frozen=True)
class QueueStats:
    waiting: int
    active: int
    completed: int
    failed: int
    delayed: int


@dataclass(frozen=True)
class BackoffOptions:
    type: Literal["exponential", "fixed"] = "exponential"
    delay: int = 1000  # milliseconds

    def delay_for(self, attempts_made: int) -> int:
        if self.type == "fixed":
            return self.delay
        return self.delay * 2 ** max(attempts_made - 1, 0)


@dataclass(frozen=True)
class JobOptions:
    """Default retry and retention policy for jobs."""

    attempts: int = 3
    backoff: BackoffOptions = field(default_factory=BackoffOptions)
    remove_on_complete: bool | int = 100  # True: drop at once, int: keep newest N
    remove_on_fail: bool | int = 50


@dataclass(frozen=True)
class RedisConnectionConfig:
    host: str = "localhost"
    port: int = 6379
    password: str | None = None
    db: int = 0


@dataclass(frozen=True)
class TaskQueueConfig:
    redis: RedisConnectionConfig = field(default_factory=RedisConnectionConfig)
    default_job_options: JobOptions = field(default_factory=JobOptions)
    concurrency: int = 10
    poll_interval: float = 0.1  # seconds between polls of an empty queue
