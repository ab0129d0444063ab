"""Agent-related data models."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

from ..errors import RecordedExecutionError


class AgentStatus(str, Enum):
    """Lifecycle status of an Agent and outcome of an execution."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class ToolDefinition(BaseModel):
    """A tool an agent may expose to its LLM provider."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class AgentConfig(BaseModel):
    """Immutable, validated agent configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    model: str = "claude-3-5-sonnet-20241022"  # served by AnthropicProvider
    system_prompt: str | None = None
    max_retries: int = Field(default=3, ge=0)
    timeout: int = Field(default=30000, ge=1000)  # milliseconds
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1)
    tools: list[ToolDefinition] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class TokenUsage:
    """Token counts reported by an LLM provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TokenUsage":
        return cls(
            prompt_tokens=int(data.get("prompt_tokens", 0)),
            completion_tokens=int(data.get("completion_tokens", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
        )


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one Agent.execute() call."""

    execution_id: str
    agent_id: str
    status: AgentStatus
    output: Any
    started_at: datetime
    completed_at: datetime
    duration: int  # milliseconds
    error: BaseException | None = None
    token_usage: TokenUsage | None = None

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None

    def to_dict(self) -> dict:
        return {
            "execution_id": self.execution_id,
            "agent_id": self.agent_id,
            "status": self.status.value,
            "output": self.output,
            "error": self.error_message,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration": self.duration,
            "token_usage": self.token_usage.to_dict() if self.token_usage else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionResult":
        """Rebuild a stored result; the error comes back as RecordedExecutionError."""
        token_usage = data.get("token_usage")
        return cls(
            execution_id=data["execution_id"],
            agent_id=data["agent_id"],
            status=AgentStatus(data["status"]),
            output=data.get("output"),
            started_at=datetime.fromisoformat(data["started_at"]),
            completed_at=datetime.fromisoformat(data["completed_at"]),
            duration=int(data["duration"]),
            error=RecordedExecutionError(data["error"]) if data.get("error") else None,
            token_usage=TokenUsage.from_dict(token_usage) if token_usage else None,
        )


EmitFn = Callable[[str, dict], Awaitable[None]]


@dataclass
class AgentContext:
    """Everything the logic callable sees for one execution.

    Timeouts are best-effort: when the deadline passes the execution is
    reported as timed out but the logic keeps running until it next returns.
    Long-running logic that must stop early should check ``remaining()``.
    """

    agent_id: str
    execution_id: str
    input: Any
    state: dict[str, Any]
    logger: logging.LoggerAdapter
    deadline: float  # event loop time
    emit: EmitFn
    token_usage: TokenUsage | None = field(default=None)

    def remaining(self) -> float:
        """Seconds left before the execution deadline."""
        return max(0.0, self.deadline - asyncio.get_running_loop().time())

    def add_token_usage(self, usage: TokenUsage) -> None:
        """Accumulate provider token usage for the ExecutionResult."""
        self.token_usage = usage if self.token_usage is None else self.token_usage + usage


AgentLogic = Callable[[AgentContext], Any]
