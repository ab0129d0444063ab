"""Agent: a configured unit of logic with retry, backoff and timeout."""

import asyncio
import functools
import inspect
import random
import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from ..errors import ConfigurationError, ExecutionTimeoutError
from ..event_bus import EventBus, IEventBus
from ..logging_config import bind_context, get_logger
from ..models import (
    AgentConfig,
    AgentContext,
    AgentLogic,
    AgentStatus,
    Event,
    EventType,
    ExecutionResult,
)

logger = get_logger(__name__)

BASE_DELAY_MS = 1000
MAX_DELAY_MS = 30000
JITTER_RATIO = 0.3


def calculate_backoff(
    attempt: int, base_delay: int = BASE_DELAY_MS, max_delay: int = MAX_DELAY_MS
) -> int:
    """Delay in ms before retry ``attempt`` (1-based): capped exponential plus up to 30% jitter."""
    delay = min(base_delay * 2 ** (attempt - 1), max_delay)
    jitter = random.random() * JITTER_RATIO * delay
    return int(delay + jitter)


def validate_config(config: AgentConfig | dict) -> AgentConfig:
    if isinstance(config, AgentConfig):
        return config
    try:
        return AgentConfig.model_validate(config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid agent configuration: {e}") from e


class AgentState:
    """Private key/value state of an agent; executions see a snapshot."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def snapshot(self) -> dict[str, Any]:
        return dict(self._data)

    def __len__(self) -> int:
        return len(self._data)


class Agent:
    """A named, configured unit of executable logic.

    ``execute`` never raises: every failure mode is encoded in the status of
    the returned ExecutionResult. The timeout is best-effort. When it fires
    the result is reported as ``timeout`` and the running logic is abandoned
    rather than cancelled; whatever it eventually returns is discarded.
    """

    def __init__(
        self,
        config: AgentConfig | dict,
        logic: AgentLogic,
        event_bus: IEventBus | None = None,
        agent_id: str | None = None,
    ):
        if not callable(logic):
            raise ConfigurationError("Agent logic must be callable")

        self.id = agent_id or str(uuid.uuid4())
        self.config = validate_config(config)
        self._logic = logic
        self._event_bus = event_bus or EventBus()
        self._status = AgentStatus.IDLE
        self._running_executions: list[str] = []
        self._state = AgentState()
        self._abandoned: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def logic(self) -> AgentLogic:
        return self._logic

    @property
    def status(self) -> AgentStatus:
        return self._status

    @property
    def current_execution_id(self) -> str | None:
        """Id of the most recently started execution still running."""
        return self._running_executions[-1] if self._running_executions else None

    @property
    def state(self) -> AgentState:
        return self._state

    async def execute(self, input: Any) -> ExecutionResult:
        """Run the logic once (with retries) and report the outcome."""
        execution_id = str(uuid.uuid4())
        self._running_executions.append(execution_id)
        started_at = datetime.now(timezone.utc)
        log = bind_context(logger, agent_id=self.id, execution_id=execution_id)

        try:
            await self._set_status(AgentStatus.RUNNING, execution_id)
            log.info("Starting execution of %s", self.name)
            await self._emit(
                execution_id,
                EventType.AGENT_STARTED,
                {"execution_id": execution_id, "input": input},
            )

            loop = asyncio.get_running_loop()
            context = AgentContext(
                agent_id=self.id,
                execution_id=execution_id,
                input=input,
                state=self._state.snapshot(),
                logger=log,
                deadline=loop.time() + self.config.timeout / 1000,
                emit=functools.partial(self._emit, execution_id),
            )

            status = AgentStatus.COMPLETED
            output = None
            error: BaseException | None = None
            try:
                output = await self._execute_with_timeout(context)
            except ExecutionTimeoutError as e:
                status, error = AgentStatus.TIMEOUT, e
            except Exception as e:
                status, error = AgentStatus.FAILED, e

            completed_at = datetime.now(timezone.utc)
            result = ExecutionResult(
                execution_id=execution_id,
                agent_id=self.id,
                status=status,
                output=output,
                error=error,
                started_at=started_at,
                completed_at=completed_at,
                duration=int((completed_at - started_at).total_seconds() * 1000),
                token_usage=context.token_usage,
            )

            await self._set_status(status, execution_id)
            payload = {"execution_id": execution_id, "result": result, "model": self.model}
            if status is AgentStatus.COMPLETED:
                log.info("Execution completed in %dms", result.duration)
                await self._emit(execution_id, EventType.AGENT_COMPLETED, payload)
            else:
                log.error("Execution %s: %s", status.value, error)
                await self._emit(
                    execution_id, EventType.AGENT_FAILED, {**payload, "error": str(error)}
                )
            return result
        finally:
            self._running_executions.remove(execution_id)

    async def _execute_with_timeout(self, context: AgentContext) -> Any:
        task = asyncio.ensure_future(self._execute_with_retry(context))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.config.timeout / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        self._abandoned.add(task)
        task.add_done_callback(self._discard_late_result)
        raise ExecutionTimeoutError(self.config.timeout)

    async def _execute_with_retry(self, context: AgentContext) -> Any:
        max_retries = self.config.max_retries
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            if attempt > 0:
                delay = calculate_backoff(attempt)
                context.logger.info(
                    "Retry attempt %d/%d, waiting %dms", attempt, max_retries, delay
                )
                if delay / 1000 >= context.remaining():
                    # The deadline fires during this backoff: no further attempts.
                    # Sleeping past it lets the caller report timeout.
                    await asyncio.sleep(delay / 1000)
                    raise last_error
                await asyncio.sleep(delay / 1000)
            try:
                return await self._invoke(context)
            except Exception as e:
                context.logger.warning("Attempt %d failed: %s", attempt + 1, e)
                if attempt == max_retries or context.remaining() <= 0:
                    raise
                last_error = e

    async def _invoke(self, context: AgentContext) -> Any:
        result = self._logic(context)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _discard_late_result(self, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        logger.debug(
            "Discarded late %s from timed-out execution of %s",
            "error" if exc else "result",
            self.name,
            extra={"context": {"agent_id": self.id}},
        )

    async def _set_status(self, status: AgentStatus, execution_id: str) -> None:
        self._status = status
        await self._emit(execution_id, EventType.AGENT_STATUS, {"status": status.value})

    async def _emit(self, execution_id: str, event_type: EventType | str, data: dict) -> None:
        await self._event_bus.publish(
            Event(
                type=event_type,
                data=data,
                source=f"agent:{self.id}",
                agent_id=self.id,
                execution_id=execution_id,
            )
        )
