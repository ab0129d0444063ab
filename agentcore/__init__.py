"""Agent execution and workflow orchestration engine."""

from .agent import Agent, AgentRuntime, IAgentRuntime, calculate_backoff
from .costs import CostEstimator
from .errors import (
    AdmissionError,
    AgentCoreError,
    AgentNotFoundError,
    ConcurrencyLimitError,
    ConfigurationError,
    ExecutionTimeoutError,
    ProviderError,
    QueueError,
    WorkflowExecutionError,
    WorkflowNotFoundError,
    WorkflowStepError,
)
from .event_bus import EventBus, EventBusLogHandler, IEventBus
from .llm import AnthropicProvider, ILLMProvider, LLMResponse
from .models import (
    AgentConfig,
    AgentContext,
    AgentStatus,
    Confidence,
    CostEstimate,
    Event,
    EventType,
    ExecutionResult,
    TaskQueueConfig,
    TaskQueueItem,
    TokenUsage,
    WorkflowDefinition,
    WorkflowExecutionResult,
    WorkflowStep,
)
from .orchestrator import IOrchestrator, Orchestrator
from .queue import TaskQueue
from .storage import IStore, Storage
from .tracker import ITracker, Tracker
from .workflow import WorkflowEngine

__all__ = [
    # Orchestrator
    "Orchestrator",
    "IOrchestrator",
    # Models
    "AgentConfig",
    "AgentContext",
    "AgentStatus",
    "Confidence",
    "CostEstimate",
    "Event",
    "EventType",
    "ExecutionResult",
    "TaskQueueConfig",
    "TaskQueueItem",
    "TokenUsage",
    "WorkflowDefinition",
    "WorkflowExecutionResult",
    "WorkflowStep",
    # Components
    "Agent",
    "AgentRuntime",
    "IAgentRuntime",
    "calculate_backoff",
    "WorkflowEngine",
    "TaskQueue",
    "CostEstimator",
    "IEventBus",
    "EventBus",
    "EventBusLogHandler",
    "IStore",
    "Storage",
    "ITracker",
    "Tracker",
    "ILLMProvider",
    "AnthropicProvider",
    "LLMResponse",
    # Errors
    "AgentCoreError",
    "ConfigurationError",
    "AdmissionError",
    "AgentNotFoundError",
    "WorkflowNotFoundError",
    "ConcurrencyLimitError",
    "ExecutionTimeoutError",
    "WorkflowStepError",
    "WorkflowExecutionError",
    "QueueError",
    "ProviderError",
]
