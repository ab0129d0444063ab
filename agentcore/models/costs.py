"""Cost tracking and estimation data models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, Literal, TypeVar

from .agents import TokenUsage

T = TypeVar("T")


class Confidence(str, Enum):
    """Reliability of a cost estimate."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]

    def downgrade(self) -> "Confidence":
        if self is Confidence.HIGH:
            return Confidence.MEDIUM
        return Confidence.LOW

    @classmethod
    def lowest(cls, values: "list[Confidence]") -> "Confidence":
        if not values:
            return cls.HIGH
        return min(values, key=lambda c: c.rank)


_CONFIDENCE_RANK = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


@dataclass(frozen=True)
class ModelPricing:
    """Per-1K-token rates for one model."""

    model: str
    provider: str
    input_cost_per_1k: float
    output_cost_per_1k: float
    currency: str = "USD"
    is_fallback: bool = False  # rates borrowed from the provider's default model

    def cost(self, usage: TokenUsage) -> float:
        return (usage.prompt_tokens / 1000) * self.input_cost_per_1k + (
            usage.completion_tokens / 1000
        ) * self.output_cost_per_1k


@dataclass
class CostInfo:
    """Recorded cost of one execution."""

    execution_id: str
    model: str
    tokens: TokenUsage
    cost: float
    currency: str = "USD"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class StepCostEstimate:
    step_id: str
    agent_name: str
    model: str
    estimated_tokens: TokenUsage
    estimated_cost: float
    confidence: Confidence


@dataclass(frozen=True)
class CostEstimate:
    """Predicted cost of a workflow run. A snapshot, never persisted."""

    total_cost: float
    total_tokens: TokenUsage
    breakdown: list[StepCostEstimate]
    confidence: Confidence
    based_on: Literal["historical", "heuristic"]
    currency: str = "USD"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaginatedResult(Generic[T]):
    data: list[T]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.data) < self.total
