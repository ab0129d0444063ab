"""Exception hierarchy for the agent engine."""

from typing import Any


class AgentCoreError(Exception):
    """Base exception for agentcore operations."""


class ConfigurationError(AgentCoreError, ValueError):
    """Invalid agent or workflow definition, rejected before execution."""


class AdmissionError(AgentCoreError):
    """A request the runtime refuses to admit; correctable by the caller."""


class AgentNotFoundError(AdmissionError, LookupError):
    def __init__(self, agent_ref: str):
        super().__init__(f"Agent not found: {agent_ref}")
        self.agent_ref = agent_ref


class WorkflowNotFoundError(AdmissionError, LookupError):
    def __init__(self, workflow_name: str):
        super().__init__(f"Workflow not found: {workflow_name}")
        self.workflow_name = workflow_name


class ConcurrencyLimitError(AdmissionError):
    def __init__(self, limit: int):
        super().__init__(f"Maximum concurrent executions reached ({limit})")
        self.limit = limit


class ExecutionTimeoutError(AgentCoreError, TimeoutError):
    def __init__(self, timeout_ms: int):
        super().__init__(f"Execution timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class WorkflowStepError(AgentCoreError):
    """A workflow step ended with status failed or timeout."""

    def __init__(self, step_id: str, reason: str | None):
        super().__init__(f"Step failed: {step_id} - {reason}")
        self.step_id = step_id
        self.reason = reason


class WorkflowExecutionError(AgentCoreError):
    """Raised by the workflow engine; ``result`` holds the partial run and trace."""

    def __init__(self, message: str, result: Any):
        super().__init__(message)
        self.result = result


class RecordedExecutionError(AgentCoreError):
    """Error message of an execution read back from the store."""


class QueueError(AgentCoreError):
    pass


class ProviderError(AgentCoreError):
    """LLM provider failure. ``status`` follows HTTP semantics when known."""

    def __init__(self, message: str, status: int | None = None, provider: str | None = None):
        super().__init__(message)
        self.status = status
        self.provider = provider


class RateLimitError(ProviderError):
    def __init__(self, provider: str, retry_after: float | None = None):
        retry_msg = f" Retry after {retry_after} seconds." if retry_after else ""
        super().__init__(f"Rate limit exceeded for {provider}.{retry_msg}", 429, provider)
        self.retry_after = retry_after


class InvalidApiKeyError(ProviderError):
    def __init__(self, provider: str):
        super().__init__(f"Invalid API key for {provider}", 401, provider)


class ProviderTimeoutError(ProviderError):
    def __init__(self, provider: str, timeout_ms: int | None = None):
        detail = f" after {timeout_ms}ms" if timeout_ms else ""
        super().__init__(f"Request to {provider} timed out{detail}", 408, provider)


class ProviderNotFoundError(ProviderError):
    def __init__(self, provider: str | None):
        name = provider or "default"
        super().__init__(f"Provider not found: {name}", None, provider)


class RetryError(AgentCoreError):
    def __init__(self, message: str, attempts: int, last_error: BaseException):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
