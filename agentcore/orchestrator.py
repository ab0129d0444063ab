"""Orchestrator: bootstrap and lifecycle of the engine components."""

from typing import Any, Protocol

from .agent import Agent, AgentRuntime
from .config import Settings, resolve_db_path
from .costs import CostEstimator
from .errors import AgentCoreError, AgentNotFoundError, QueueError, WorkflowNotFoundError
from .event_bus import EventBus, EventBusLogHandler
from .llm import ILLMProvider
from .logging_config import get_logger
from .models import (
    AgentConfig,
    AgentLogic,
    AgentStatus,
    CostEstimate,
    CostInfo,
    ExecutionResult,
    Job,
    PaginatedResult,
    QueueStats,
    TaskQueueItem,
    Trace,
    WorkflowDefinition,
    WorkflowExecutionResult,
)
from .queue import TaskQueue
from .storage import IStore, Storage
from .tracker import ITracker, Tracker
from .workflow import WorkflowEngine

logger = get_logger(__name__)

AGENT_TASK_TYPE = "agent"


class IOrchestrator(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...


class Orchestrator:
    """Wires store, event bus, tracker, runtime, workflow engine, cost
    estimator and (optionally) the task queue, and exposes them as one facade.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        llm_provider: ILLMProvider | None = None,
        task_queue: TaskQueue | None = None,
        store: IStore | None = None,
    ):
        self._settings = settings or Settings()
        self._llm = llm_provider
        self._task_queue = task_queue

        # Components (will be initialized in start())
        self._store: IStore | None = store
        self._event_bus: EventBus | None = None
        self._tracker: ITracker | None = None
        self._runtime: AgentRuntime | None = None
        self._workflow_engine: WorkflowEngine | None = None
        self._cost_estimator: CostEstimator | None = None
        self._log_handler: EventBusLogHandler | None = None
        self._started = False

    async def start(self) -> None:
        """Initialize components in dependency order."""
        if self._started:
            return
        logger.info("Starting orchestrator")

        # 1. Store (no dependencies)
        if self._store is None:
            self._store = Storage(resolve_db_path(self._settings.db_path))
        await self._store.init()
        logger.info("Store initialized")

        # 2. EventBus
        self._event_bus = EventBus()
        self._log_handler = EventBusLogHandler(self._event_bus)
        self._log_handler.attach()

        # 3. Tracker (depends on EventBus + Store)
        self._tracker = Tracker(self._event_bus, self._store)
        await self._tracker.start()

        # 4. Runtime (depends on EventBus, optional LLM provider)
        self._runtime = AgentRuntime(
            event_bus=self._event_bus,
            default_provider=self._llm,
            max_concurrent_executions=self._settings.max_concurrent_executions,
        )
        if self._llm is not None:
            self._runtime.register_provider(self._llm.name, self._llm)

        # 5. WorkflowEngine and CostEstimator (depend on Runtime)
        self._workflow_engine = WorkflowEngine(self._runtime, self._event_bus)
        self._cost_estimator = CostEstimator(self._runtime, self._store)

        # 6. TaskQueue (consumes through the Runtime)
        if self._task_queue is not None:
            await self._task_queue.connect()
            self._task_queue.on_process(self._process_job)
            logger.info("Task queue %s consuming", self._task_queue.name)

        self._started = True
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if not self._started:
            return
        if self._task_queue is not None:
            await self._task_queue.close()
        if self._runtime:
            await self._runtime.shutdown()
        if self._tracker:
            await self._tracker.stop()
        if self._log_handler:
            self._log_handler.detach()
        if self._store:
            await self._store.close()
            logger.info("Store closed")
        self._started = False

    # Agents

    def create_agent(self, config: AgentConfig | dict, logic: AgentLogic) -> Agent:
        return self.runtime.create_agent(config, logic)

    async def execute_task(self, agent_id: str, input: Any) -> ExecutionResult:
        """Execute an agent directly, bypassing the queue."""
        return await self.runtime.execute_agent(agent_id, input)

    async def submit_task(
        self,
        agent_id: str,
        input: Any,
        priority: int | None = None,
        delay: int | None = None,
        job_id: str | None = None,
    ) -> Job:
        """Queue an agent execution; the queue retries it when it does not complete."""
        if self._task_queue is None:
            raise QueueError("Task queue not configured")
        if self.runtime.get_agent(agent_id) is None:
            raise AgentNotFoundError(agent_id)

        item = TaskQueueItem(
            type=AGENT_TASK_TYPE,
            payload={"agent_id": agent_id, "input": input},
            priority=priority,
        )
        return await self._task_queue.add_task(item, priority=priority, delay=delay, job_id=job_id)

    async def _process_job(self, job: Job) -> dict:
        if job.item.type != AGENT_TASK_TYPE:
            raise QueueError(f"Unsupported task type: {job.item.type}")

        payload = job.item.payload
        result = await self.runtime.execute_agent(payload["agent_id"], payload.get("input"))
        if result.status is not AgentStatus.COMPLETED:
            # Surface the failure so the queue's retry policy applies
            if result.error is not None:
                raise result.error
            raise AgentCoreError(f"Execution {result.execution_id} ended as {result.status.value}")
        return result.to_dict()

    # Workflows

    def register_workflow(self, definition: WorkflowDefinition) -> None:
        self.workflow_engine.register_workflow(definition)

    async def execute_workflow(self, name: str, input: Any) -> WorkflowExecutionResult:
        return await self.workflow_engine.execute(name, input)

    async def estimate_workflow_cost(self, name: str, input: Any = None) -> CostEstimate:
        definition = self.workflow_engine.get_workflow(name)
        if definition is None:
            raise WorkflowNotFoundError(name)
        return await self.cost_estimator.estimate_workflow_cost(definition, input)

    # Observability

    async def get_trace(self, execution_id: str) -> Trace | None:
        return await self.store.get_trace(execution_id)

    async def get_costs(
        self,
        execution_id: str | None = None,
        model: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> PaginatedResult[CostInfo]:
        return await self.store.get_costs(
            execution_id=execution_id, model=model, limit=limit, offset=offset
        )

    async def get_queue_stats(self) -> QueueStats:
        if self._task_queue is None:
            raise QueueError("Task queue not configured")
        return await self._task_queue.get_stats()

    # Components

    @property
    def store(self) -> IStore:
        if not self._started or self._store is None:
            raise RuntimeError("Orchestrator not started")
        return self._store

    @property
    def event_bus(self) -> EventBus:
        if not self._event_bus:
            raise RuntimeError("Orchestrator not started")
        return self._event_bus

    @property
    def runtime(self) -> AgentRuntime:
        if not self._runtime:
            raise RuntimeError("Orchestrator not started")
        return self._runtime

    @property
    def workflow_engine(self) -> WorkflowEngine:
        if not self._workflow_engine:
            raise RuntimeError("Orchestrator not started")
        return self._workflow_engine

    @property
    def cost_estimator(self) -> CostEstimator:
        if not self._cost_estimator:
            raise RuntimeError("Orchestrator not started")
        return self._cost_estimator

    @property
    def task_queue(self) -> TaskQueue | None:
        return self._task_queue
