"""Core data models for agentcore."""

from .agents import (
    AgentConfig,
    AgentContext,
    AgentLogic,
    AgentStatus,
    ExecutionResult,
    TokenUsage,
    ToolDefinition,
)
from .costs import (
    Confidence,
    CostEstimate,
    CostInfo,
    ModelPricing,
    PaginatedResult,
    StepCostEstimate,
)
from .events import Event, EventType
from .queue import (
    BackoffOptions,
    Job,
    JobOptions,
    JobState,
    QueueStats,
    RedisConnectionConfig,
    TaskQueueConfig,
    TaskQueueItem,
)
from .workflow import (
    StepPredicate,
    Trace,
    TraceNode,
    WorkflowDefinition,
    WorkflowExecutionResult,
    WorkflowStep,
)

__all__ = [
    # Agents
    "AgentConfig",
    "AgentContext",
    "AgentLogic",
    "AgentStatus",
    "ExecutionResult",
    "TokenUsage",
    "ToolDefinition",
    # Events
    "Event",
    "EventType",
    # Workflows
    "StepPredicate",
    "Trace",
    "TraceNode",
    "WorkflowDefinition",
    "WorkflowExecutionResult",
    "WorkflowStep",
    # Costs
    "Confidence",
    "CostEstimate",
    "CostInfo",
    "ModelPricing",
    "PaginatedResult",
    "StepCostEstimate",
    # Queue
    "BackoffOptions",
    "Job",
    "JobOptions",
    "JobState",
    "QueueStats",
    "RedisConnectionConfig",
    "TaskQueueConfig",
    "TaskQueueItem",
]
