"""AgentRuntime: registry of agents and providers with a concurrency ceiling."""

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

from ..errors import AgentNotFoundError, ConcurrencyLimitError, ProviderNotFoundError
from ..event_bus import EventBus, IEventBus
from ..llm import ILLMProvider, LLMResponse
from ..logging_config import get_logger
from ..models import AgentConfig, AgentLogic, Event, EventType, ExecutionResult
from .agent import Agent

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENT_EXECUTIONS = 10


class IAgentRuntime(Protocol):
    """Agent registry the workflow engine and cost estimator depend on."""

    def get_agent(self, agent_id: str) -> Agent | None:
        ...

    def get_agent_by_name(self, name: str) -> Agent | None:
        ...

    async def execute_agent(self, agent_id: str, input: Any) -> ExecutionResult:
        ...


class AgentRuntime:
    """Creates, looks up, removes and hot-reloads agents.

    The concurrency ceiling is an admission check, not a semaphore: when it is
    reached execute_agent() raises ConcurrencyLimitError instead of waiting.
    Use the TaskQueue when back-pressure is needed.
    """

    def __init__(
        self,
        event_bus: IEventBus | None = None,
        default_provider: ILLMProvider | None = None,
        max_concurrent_executions: int = DEFAULT_MAX_CONCURRENT_EXECUTIONS,
    ):
        self._event_bus = event_bus or EventBus()
        self._default_provider = default_provider
        self._max_concurrent = max_concurrent_executions
        self._agents: dict[str, Agent] = {}
        self._providers: dict[str, ILLMProvider] = {}
        self._running: set[str] = set()

    @property
    def event_bus(self) -> IEventBus:
        return self._event_bus

    @property
    def max_concurrent_executions(self) -> int:
        return self._max_concurrent

    @property
    def running_executions_count(self) -> int:
        return len(self._running)

    # Providers
    def register_provider(self, name: str, provider: ILLMProvider) -> None:
        self._providers[name] = provider
        logger.info("Registered provider: %s", name)

    def get_provider(self, name: str | None = None) -> ILLMProvider | None:
        if name and name in self._providers:
            return self._providers[name]
        return self._default_provider

    def set_default_provider(self, provider: ILLMProvider) -> None:
        self._default_provider = provider

    # Agents
    def create_agent(self, config: AgentConfig | dict, logic: AgentLogic) -> Agent:
        agent = Agent(config, logic, self._event_bus)
        self._agents[agent.id] = agent
        logger.info(
            "Created agent: %s", agent.name, extra={"context": {"agent_id": agent.id}}
        )
        return agent

    def get_agent(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def get_agent_by_name(self, name: str) -> Agent | None:
        for agent in self._agents.values():
            if agent.name == name:
                return agent
        return None

    def get_all_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def remove_agent(self, agent_id: str) -> bool:
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return False
        logger.info("Removed agent: %s", agent.name, extra={"context": {"agent_id": agent_id}})
        return True

    async def execute_agent(self, agent_id: str, input: Any) -> ExecutionResult:
        """Execute an agent by id, subject to the concurrency ceiling."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)

        if len(self._running) >= self._max_concurrent:
            raise ConcurrencyLimitError(self._max_concurrent)

        execution_key = f"{agent_id}:{uuid.uuid4()}"
        self._running.add(execution_key)
        try:
            return await agent.execute(input)
        finally:
            self._running.discard(execution_key)

    async def chat(
        self,
        agent_id: str,
        messages: list[dict],
        provider_name: str | None = None,
    ) -> LLMResponse:
        """Send messages to a provider using the agent's model settings."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)

        provider = self._providers.get(provider_name) if provider_name else self._default_provider
        if provider is None:
            raise ProviderNotFoundError(provider_name)

        config = agent.config
        if config.system_prompt:
            messages = [{"role": "system", "content": config.system_prompt}, *messages]

        return await provider.chat(
            messages,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            tools=[tool.model_dump() for tool in config.tools] or None,
        )

    async def reload_agent(
        self, agent_id: str, new_config: AgentConfig | dict, new_logic: AgentLogic
    ) -> Agent:
        """Swap an agent's config and logic, keeping its id.

        The replacement is fully built before the registry changes. If that
        fails the previous agent stays registered untouched, a reload-failed
        event is published and the error is re-raised.
        """
        previous = self._agents.get(agent_id)
        if previous is None:
            raise AgentNotFoundError(agent_id)

        try:
            replacement = Agent(new_config, new_logic, self._event_bus, agent_id=agent_id)
        except Exception as e:
            logger.error(
                "Failed to reload agent %s, keeping previous configuration: %s",
                previous.name,
                e,
                extra={"context": {"agent_id": agent_id}},
            )
            await self._publish(
                EventType.AGENT_RELOAD_FAILED,
                agent_id,
                {"agent_name": previous.name, "error": str(e)},
            )
            raise

        self._agents[agent_id] = replacement
        logger.info("Reloaded agent: %s", replacement.name, extra={"context": {"agent_id": agent_id}})
        await self._publish(
            EventType.AGENT_RELOADED, agent_id, {"agent_name": replacement.name}
        )
        return replacement

    async def shutdown(self) -> None:
        """Drop all agents, providers and listeners. Call exactly once."""
        logger.info("Shutting down agent runtime")
        self._agents.clear()
        self._providers.clear()
        self._running.clear()
        self._event_bus.clear()

    async def _publish(self, event_type: EventType, agent_id: str, data: dict) -> None:
        await self._event_bus.publish(
            Event(
                type=event_type,
                data={
                    "agent_id": agent_id,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    **data,
                },
                source="runtime",
                agent_id=agent_id,
            )
        )
