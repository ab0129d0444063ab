"""CostEstimator: predicts the cost of a workflow run before executing it."""

from typing import Any, Literal

from ..agent import IAgentRuntime
from ..errors import AgentNotFoundError
from ..llm.pricing import get_model_pricing
from ..logging_config import get_logger
from ..models import (
    AgentConfig,
    Confidence,
    CostEstimate,
    StepCostEstimate,
    TokenUsage,
    WorkflowDefinition,
)
from ..storage import IStore

logger = get_logger(__name__)

HISTORY_SAMPLE_SIZE = 10
MIN_PROMPT_TOKENS = 1000
DEFAULT_COMPLETION_TOKENS = 500
CHARS_PER_TOKEN = 4


class CostEstimator:
    """Estimates workflow cost from recorded history, else from agent configs.

    Read-only: never writes to the store and never calls a provider.
    """

    def __init__(self, runtime: IAgentRuntime, store: IStore):
        self._runtime = runtime
        self._store = store

    async def estimate_workflow_cost(
        self, definition: WorkflowDefinition, input: Any = None
    ) -> CostEstimate:
        history = await self._historical_usage()
        based_on: Literal["historical", "heuristic"] = (
            "historical" if history is not None else "heuristic"
        )

        breakdown: list[StepCostEstimate] = []
        for step in definition.steps:
            agent = self._runtime.get_agent_by_name(step.agent)
            if agent is None:
                raise AgentNotFoundError(step.agent)

            if history is not None:
                tokens, confidence = history, Confidence.HIGH
            else:
                tokens, confidence = self._heuristic_usage(agent.config), Confidence.MEDIUM

            pricing = get_model_pricing(agent.model)
            if pricing.is_fallback:
                confidence = confidence.downgrade()

            breakdown.append(
                StepCostEstimate(
                    step_id=step.id,
                    agent_name=agent.name,
                    model=agent.model,
                    estimated_tokens=tokens,
                    estimated_cost=pricing.cost(tokens),
                    confidence=confidence,
                )
            )

        total_tokens = TokenUsage()
        for step_estimate in breakdown:
            total_tokens = total_tokens + step_estimate.estimated_tokens

        estimate = CostEstimate(
            total_cost=sum(s.estimated_cost for s in breakdown),
            total_tokens=total_tokens,
            breakdown=breakdown,
            confidence=Confidence.lowest([s.confidence for s in breakdown]),
            based_on=based_on,
        )
        logger.info(
            "Estimated workflow %s: $%.6f (%s, %s)",
            definition.name,
            estimate.total_cost,
            estimate.based_on,
            estimate.confidence.value,
        )
        return estimate

    async def _historical_usage(self) -> TokenUsage | None:
        """Average token usage of the most recent recorded costs, if any."""
        try:
            executions = await self._store.get_all_executions(limit=1)
            if not executions:
                return None
            costs = await self._store.get_costs(limit=HISTORY_SAMPLE_SIZE)
        except Exception as e:
            logger.warning("Failed to read execution history: %s", e)
            return None

        if not costs.data:
            return None
        count = len(costs.data)
        prompt = sum(c.tokens.prompt_tokens for c in costs.data) // count
        completion = sum(c.tokens.completion_tokens for c in costs.data) // count
        return TokenUsage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )

    @staticmethod
    def _heuristic_usage(config: AgentConfig) -> TokenUsage:
        prompt = max(MIN_PROMPT_TOKENS, len(config.system_prompt or "") // CHARS_PER_TOKEN)
        completion = config.max_tokens or DEFAULT_COMPLETION_TOKENS
        return TokenUsage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion,
        )
