"""WorkflowEngine: runs workflow DAGs on top of the AgentRuntime."""

import asyncio
import uuid
from types import MappingProxyType
from typing import Any

from ..agent import IAgentRuntime
from ..errors import (
    AgentNotFoundError,
    ConfigurationError,
    WorkflowExecutionError,
    WorkflowNotFoundError,
    WorkflowStepError,
)
from ..event_bus import EventBus, IEventBus
from ..logging_config import get_logger
from ..models import (
    AgentStatus,
    Event,
    EventType,
    ExecutionResult,
    StepPredicate,
    TraceNode,
    WorkflowDefinition,
    WorkflowExecutionResult,
    WorkflowStep,
)
from .conditions import compile_condition

logger = get_logger(__name__)


def validate_workflow(definition: WorkflowDefinition) -> dict[str, StepPredicate]:
    """Check a definition and compile its step conditions.

    Raises ConfigurationError for an empty name, no steps, duplicate step ids,
    an unknown entry point, an unknown ``next`` reference or a bad condition.
    """
    if not definition.name:
        raise ConfigurationError("Workflow must have a name")
    if not definition.steps:
        raise ConfigurationError("Workflow must have at least one step")
    if not definition.entry_point:
        raise ConfigurationError("Workflow must have an entry point")

    step_ids: set[str] = set()
    for step in definition.steps:
        if step.id in step_ids:
            raise ConfigurationError(f"Duplicate step id {step.id!r}")
        step_ids.add(step.id)

    if definition.entry_point not in step_ids:
        raise ConfigurationError(f'Entry point "{definition.entry_point}" not found in steps')

    conditions: dict[str, StepPredicate] = {}
    for step in definition.steps:
        for next_id in step.next_ids():
            if next_id not in step_ids:
                raise ConfigurationError(
                    f'Step "{step.id}" references unknown next step "{next_id}"'
                )
        predicate = compile_condition(step)
        if predicate is not None:
            conditions[step.id] = predicate
    return conditions


class WorkflowEngine:
    """Executes registered workflows round by round.

    Each round runs every frontier step whose predecessors have all been
    executed, concurrently. The first failed or timed-out step aborts the
    workflow; steps already completed in that round are kept.
    """

    def __init__(self, runtime: IAgentRuntime, event_bus: IEventBus | None = None):
        self._runtime = runtime
        self._event_bus = event_bus or EventBus()
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._conditions: dict[str, dict[str, StepPredicate]] = {}
        self._detached: set[asyncio.Task] = set()

    def register_workflow(self, definition: WorkflowDefinition) -> None:
        conditions = validate_workflow(definition)
        self._workflows[definition.name] = definition
        self._conditions[definition.name] = conditions
        logger.info("Workflow registered: %s", definition.name)

    def get_workflow(self, name: str) -> WorkflowDefinition | None:
        return self._workflows.get(name)

    def list_workflows(self) -> list[str]:
        return list(self._workflows)

    async def execute(self, workflow_name: str, input: Any) -> WorkflowExecutionResult:
        """Run a registered workflow.

        Raises:
            WorkflowNotFoundError: the name is not registered.
            WorkflowExecutionError: a step failed; ``.result`` holds the
                partial step results and the trace.
        """
        definition = self._workflows.get(workflow_name)
        if definition is None:
            raise WorkflowNotFoundError(workflow_name)

        execution_id = str(uuid.uuid4())
        step_results: dict[str, ExecutionResult] = {}
        step_outputs: dict[str, Any] = {}
        root = TraceNode(
            name=workflow_name,
            type="workflow",
            input=input,
            metadata={"execution_id": execution_id},
        )

        logger.info(
            "Starting workflow execution: %s",
            workflow_name,
            extra={"context": {"execution_id": execution_id}},
        )
        await self._publish(
            EventType.WORKFLOW_STARTED,
            execution_id,
            {"workflow_name": workflow_name, "input": input},
        )

        try:
            await self._execute_steps(
                definition, execution_id, input, step_results, step_outputs, root
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            root.finish(error=message)
            result = WorkflowExecutionResult(
                execution_id=execution_id,
                workflow_name=workflow_name,
                status="failed",
                step_results=step_results,
                output=None,
                duration=root.duration,
                trace=root,
            )
            logger.error(
                "Workflow %s failed: %s",
                workflow_name,
                message,
                extra={"context": {"execution_id": execution_id}},
            )
            await self._publish(
                EventType.WORKFLOW_FAILED,
                execution_id,
                {"workflow_name": workflow_name, "result": result, "trace": root, "error": message},
            )
            raise WorkflowExecutionError(message, result) from e

        root.finish(output=dict(step_outputs))
        result = WorkflowExecutionResult(
            execution_id=execution_id,
            workflow_name=workflow_name,
            status="completed",
            step_results=step_results,
            output=self._workflow_output(definition, step_outputs),
            duration=root.duration,
            trace=root,
        )
        logger.info(
            "Workflow %s completed in %dms",
            workflow_name,
            result.duration,
            extra={"context": {"execution_id": execution_id}},
        )
        await self._publish(
            EventType.WORKFLOW_COMPLETED,
            execution_id,
            {"workflow_name": workflow_name, "result": result, "trace": root},
        )
        return result

    async def _execute_steps(
        self,
        definition: WorkflowDefinition,
        execution_id: str,
        input: Any,
        step_results: dict[str, ExecutionResult],
        step_outputs: dict[str, Any],
        root: TraceNode,
    ) -> None:
        conditions = self._conditions[definition.name]
        executed: set[str] = set()
        frontier = [definition.entry_point]
        aborted = asyncio.Event()

        while frontier:
            ready = [
                step_id
                for step_id in frontier
                if step_id not in executed and self._can_execute(step_id, definition, executed)
            ]
            if not ready:
                break

            to_run: list[WorkflowStep] = []
            for step_id in ready:
                predicate = conditions.get(step_id)
                if predicate is not None and not predicate(MappingProxyType(step_outputs)):
                    logger.info("Skipping step due to condition: %s", step_id)
                    continue
                to_run.append(definition.get_step(step_id))

            # Siblings see the outputs as they were at the start of the round
            previous = dict(step_outputs)
            tasks = {
                asyncio.ensure_future(
                    self._execute_step(step, execution_id, input, previous, root, aborted)
                ): step
                for step in to_run
            }
            if tasks:
                try:
                    done, pending = await asyncio.wait(
                        tasks, return_when=asyncio.FIRST_EXCEPTION
                    )
                except asyncio.CancelledError:
                    for task in tasks:
                        task.cancel()
                    raise
            else:
                done, pending = set(), set()

            failure: BaseException | None = None
            for task, step in tasks.items():
                if task not in done:
                    continue
                if task.exception() is not None:
                    failure = failure or task.exception()
                    continue
                step_results[step.id] = task.result()
                step_outputs[step.id] = task.result().output

            if failure is not None:
                # Siblings still running finish detached from the trace and events
                aborted.set()
                for task in pending:
                    self._detached.add(task)
                    task.add_done_callback(self._discard_detached)
                raise failure

            executed.update(ready)

            frontier = []
            for step_id in ready:
                for next_id in definition.get_step(step_id).next_ids():
                    if next_id not in frontier:
                        frontier.append(next_id)

    async def _execute_step(
        self,
        step: WorkflowStep,
        execution_id: str,
        input: Any,
        previous: dict[str, Any],
        root: TraceNode,
        aborted: asyncio.Event,
    ) -> ExecutionResult:
        agent = self._runtime.get_agent_by_name(step.agent)
        if agent is None:
            raise AgentNotFoundError(step.agent)

        step_input = {"initial": input, "previousSteps": previous}
        node = root.add_child(
            TraceNode(
                name=step.id,
                type="agent",
                input=step_input,
                metadata={"agent": step.agent, "agent_id": agent.id},
            )
        )
        logger.info(
            "Executing step: %s",
            step.id,
            extra={"context": {"execution_id": execution_id, "agent": step.agent}},
        )

        try:
            result = await self._runtime.execute_agent(agent.id, step_input)
        except Exception as e:
            if not aborted.is_set():
                node.finish(error=str(e) or type(e).__name__)
            raise

        if aborted.is_set():
            # The workflow already failed and its trace is final
            logger.info(
                "Step %s finished after workflow abort, result dropped",
                step.id,
                extra={"context": {"execution_id": execution_id}},
            )
            return result

        node.metadata["execution_id"] = result.execution_id
        if result.status in (AgentStatus.FAILED, AgentStatus.TIMEOUT):
            node.finish(output=result.output, error=result.error_message or result.status.value)
            raise WorkflowStepError(step.id, result.error_message or result.status.value)

        node.finish(output=result.output)
        await self._publish(
            EventType.WORKFLOW_STEP_COMPLETED,
            execution_id,
            {"step_id": step.id, "result": result},
        )
        return result

    def _discard_detached(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Detached step ended with error: %s", task.exception())

    @staticmethod
    def _can_execute(step_id: str, definition: WorkflowDefinition, executed: set[str]) -> bool:
        return all(pred in executed for pred in definition.predecessors(step_id))

    @staticmethod
    def _workflow_output(definition: WorkflowDefinition, step_outputs: dict[str, Any]) -> Any:
        terminal = definition.terminal_steps()
        if len(terminal) == 1:
            return step_outputs.get(terminal[0].id)
        return dict(step_outputs)

    async def _publish(self, event_type: EventType, execution_id: str, data: dict) -> None:
        await self._event_bus.publish(
            Event(
                type=event_type,
                data={"execution_id": execution_id, **data},
                source="workflow_engine",
                execution_id=execution_id,
            )
        )
