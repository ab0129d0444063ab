"""LLM module."""

from .llm_provider import AnthropicProvider, ILLMProvider, LLMResponse, ToolCall
from .pricing import get_cost_usd, get_model_pricing
from .retry import retry_with_backoff

__all__ = [
    "AnthropicProvider",
    "ILLMProvider",
    "LLMResponse",
    "ToolCall",
    "get_cost_usd",
    "get_model_pricing",
    "retry_with_backoff",
]
