"""
Static per-provider model pricing (USD per 1K tokens).
Unknown local models cost 0.0; unknown hosted models borrow their provider's default rates.
"""

import json
import os

from ..logging_config import get_logger
from ..models import ModelPricing, TokenUsage

logger = get_logger(__name__)

Rates = dict[str, dict[str, float]]

OPENAI_MODEL_COSTS: Rates = {
    "gpt-4": {"input": 0.03, "output": 0.06},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-4-turbo-2024-04-09": {"input": 0.01, "output": 0.03},
    "gpt-4o": {"input": 0.0025, "output": 0.01},
    "gpt-4o-2024-11-20": {"input": 0.0025, "output": 0.01},
    "gpt-4o-2024-08-06": {"input": 0.0025, "output": 0.01},
    "gpt-4o-2024-05-13": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4o-mini-2024-07-18": {"input": 0.00015, "output": 0.0006},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
    "gpt-3.5-turbo-0125": {"input": 0.0005, "output": 0.0015},
    "o1-preview": {"input": 0.015, "output": 0.06},
    "o1-preview-2024-09-12": {"input": 0.015, "output": 0.06},
    "o1-mini": {"input": 0.003, "output": 0.012},
    "o1-mini-2024-09-12": {"input": 0.003, "output": 0.012},
}

ANTHROPIC_MODEL_COSTS: Rates = {
    "claude-3-opus-20240229": {"input": 0.015, "output": 0.075},
    "claude-3-5-sonnet-20241022": {"input": 0.003, "output": 0.015},
    "claude-3-5-sonnet-20240620": {"input": 0.003, "output": 0.015},
    "claude-3-5-haiku-20241022": {"input": 0.0008, "output": 0.004},
    "claude-3-sonnet-20240229": {"input": 0.003, "output": 0.015},
    "claude-3-haiku-20240307": {"input": 0.00025, "output": 0.00125},
}

OLLAMA_MODEL_COSTS: Rates = {
    "llama3.2": {"input": 0.0, "output": 0.0},
    "llama3.1": {"input": 0.0, "output": 0.0},
    "llama3": {"input": 0.0, "output": 0.0},
    "llama2": {"input": 0.0, "output": 0.0},
    "mistral": {"input": 0.0, "output": 0.0},
    "mixtral": {"input": 0.0, "output": 0.0},
    "codellama": {"input": 0.0, "output": 0.0},
}

OPENAI_DEFAULT_MODEL = "gpt-4"
ANTHROPIC_DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

_cached_overrides: Rates | None = None


def _load_override_from_json(text: str) -> Rates:
    data = json.loads(text)
    out: Rates = {}
    for model, entry in data.items():
        out[model] = {
            "input": float(entry.get("input", 0.0)),
            "output": float(entry.get("output", 0.0)),
        }
    return out


def _load_overrides() -> Rates:
    """
    Resolve pricing overrides from env vars.
    Precedence:
      1) AGENTCORE_PRICING_JSON
      2) AGENTCORE_PRICING_PATH
    """
    override_json = os.getenv("AGENTCORE_PRICING_JSON")
    if override_json:
        try:
            return _load_override_from_json(override_json)
        except (ValueError, AttributeError) as exc:
            logger.warning("Invalid AGENTCORE_PRICING_JSON override: %s", exc)

    override_path = os.getenv("AGENTCORE_PRICING_PATH")
    if override_path:
        try:
            with open(override_path, "r", encoding="utf-8") as f:
                return _load_override_from_json(f.read())
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("Invalid AGENTCORE_PRICING_PATH override: %s", exc)

    return {}


def _overrides() -> Rates:
    global _cached_overrides
    if _cached_overrides is None:
        _cached_overrides = _load_overrides()
    return _cached_overrides


def reset_pricing_cache() -> None:
    global _cached_overrides
    _cached_overrides = None


def provider_for_model(model: str) -> str:
    if model.startswith("gpt-") or model.startswith("o1-"):
        return "openai"
    if model.startswith("claude-"):
        return "anthropic"
    return "ollama"


def get_model_pricing(model: str) -> ModelPricing:
    """Look up rates for ``model``, falling back to the provider default."""
    provider = provider_for_model(model)
    override = _overrides().get(model)
    if override is not None:
        return ModelPricing(model, provider, override["input"], override["output"])

    is_fallback = False
    if provider == "openai":
        costs = OPENAI_MODEL_COSTS.get(model)
        if costs is None:
            costs, is_fallback = OPENAI_MODEL_COSTS[OPENAI_DEFAULT_MODEL], True
    elif provider == "anthropic":
        costs = ANTHROPIC_MODEL_COSTS.get(model)
        if costs is None:
            costs, is_fallback = ANTHROPIC_MODEL_COSTS[ANTHROPIC_DEFAULT_MODEL], True
    else:
        # local models are free
        costs = OLLAMA_MODEL_COSTS.get(model, {"input": 0.0, "output": 0.0})

    return ModelPricing(
        model=model,
        provider=provider,
        input_cost_per_1k=costs["input"],
        output_cost_per_1k=costs["output"],
        is_fallback=is_fallback,
    )


def get_cost_usd(model: str | None, usage: TokenUsage) -> float:
    if not model:
        return 0.0
    return get_model_pricing(model).cost(usage)
