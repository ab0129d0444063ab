"""Tracker: persists executions, costs and traces published on the EventBus."""

from typing import Protocol

from ..event_bus import IEventBus
from ..llm.pricing import get_cost_usd
from ..logging_config import get_logger
from ..models import CostInfo, Event, EventType, ExecutionResult, Trace
from ..storage import IStore

logger = get_logger(__name__)


class ITracker(Protocol):
    """Records execution outcomes. Subscribes to the EventBus; never raises into publishers."""

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


class Tracker:
    """Writes agent executions, their costs and workflow traces to the store."""

    def __init__(self, event_bus: IEventBus, store: IStore):
        self._event_bus = event_bus
        self._store = store
        self._started = False

    async def start(self) -> None:
        """Subscribe to execution and workflow outcome events."""
        if self._started:
            return
        for event_type in (EventType.AGENT_COMPLETED, EventType.AGENT_FAILED):
            self._event_bus.subscribe(event_type, self._handle_execution)
        for event_type in (EventType.WORKFLOW_COMPLETED, EventType.WORKFLOW_FAILED):
            self._event_bus.subscribe(event_type, self._handle_workflow)
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        for event_type in (EventType.AGENT_COMPLETED, EventType.AGENT_FAILED):
            self._event_bus.unsubscribe(event_type, self._handle_execution)
        for event_type in (EventType.WORKFLOW_COMPLETED, EventType.WORKFLOW_FAILED):
            self._event_bus.unsubscribe(event_type, self._handle_workflow)
        self._started = False

    async def _handle_execution(self, event: Event) -> None:
        result: ExecutionResult | None = event.data.get("result")
        if result is None:
            return
        try:
            await self._store.add_execution(result)
            if result.token_usage is not None:
                model = event.data.get("model") or "unknown"
                await self._store.add_cost(
                    CostInfo(
                        execution_id=result.execution_id,
                        model=model,
                        tokens=result.token_usage,
                        cost=get_cost_usd(model, result.token_usage),
                    )
                )
        except Exception:
            logger.exception(
                "Failed to record execution %s",
                result.execution_id,
                extra={"context": {"agent_id": result.agent_id}},
            )

    async def _handle_workflow(self, event: Event) -> None:
        trace_root = event.data.get("trace")
        execution_id = event.data.get("execution_id")
        if trace_root is None or execution_id is None:
            return
        try:
            await self._store.add_trace(Trace(execution_id=execution_id, root=trace_root))
        except Exception:
            logger.exception(
                "Failed to record trace for workflow execution %s",
                execution_id,
                extra={"context": {"execution_id": execution_id}},
            )
