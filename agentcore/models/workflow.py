"""Workflow and tracing data models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Mapping

from .agents import ExecutionResult

StepPredicate = Callable[[Mapping[str, Any]], bool]
TraceNodeType = Literal["agent", "tool", "llm", "workflow"]


@dataclass
class WorkflowStep:
    """A single step of a workflow, bound to an agent by name."""

    id: str
    agent: str
    next: str | list[str] | None = None
    condition: str | StepPredicate | None = None  # "<stepId>.<property>" or predicate
    parallel: bool = False

    def next_ids(self) -> list[str]:
        if not self.next:
            return []
        if isinstance(self.next, str):
            return [self.next]
        return list(self.next)


@dataclass
class WorkflowDefinition:
    """A DAG of steps, keyed by its unique name."""

    name: str
    steps: list[WorkflowStep]
    entry_point: str
    description: str | None = None

    def get_step(self, step_id: str) -> WorkflowStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def predecessors(self, step_id: str) -> list[str]:
        return [step.id for step in self.steps if step_id in step.next_ids()]

    def terminal_steps(self) -> list[WorkflowStep]:
        return [step for step in self.steps if not step.next_ids()]


@dataclass
class TraceNode:
    """One node of an execution trace tree."""

    name: str
    type: TraceNodeType
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    parent_id: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: datetime | None = None
    duration: int | None = None  # milliseconds
    input: Any = None
    output: Any = None
    error: str | None = None
    children: list["TraceNode"] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_child(self, child: "TraceNode") -> "TraceNode":
        child.parent_id = self.id
        self.children.append(child)
        return child

    def finish(self, output: Any = None, error: str | None = None) -> None:
        self.completed_at = datetime.now(timezone.utc)
        self.duration = int((self.completed_at - self.started_at).total_seconds() * 1000)
        if output is not None:
            self.output = output
        if error is not None:
            self.error = error

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "name": self.name,
            "type": self.type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration": self.duration,
            "input": self.input,
            "output": self.output,
            "error": self.error,
            "children": [child.to_dict() for child in self.children],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TraceNode":
        completed_at = data.get("completed_at")
        return cls(
            id=data["id"],
            parent_id=data.get("parent_id"),
            name=data["name"],
            type=data["type"],
            started_at=datetime.fromisoformat(data["started_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            duration=data.get("duration"),
            input=data.get("input"),
            output=data.get("output"),
            error=data.get("error"),
            children=[cls.from_dict(child) for child in data.get("children", [])],
            metadata=data.get("metadata") or {},
        )


@dataclass
class Trace:
    """A stored trace tree for one workflow execution."""

    execution_id: str
    root: TraceNode
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class WorkflowExecutionResult:
    """Outcome of one WorkflowEngine.execute() call."""

    execution_id: str
    workflow_name: str
    status: Literal["completed", "failed"]
    step_results: dict[str, ExecutionResult]
    output: Any
    duration: int  # milliseconds
    trace: TraceNode
