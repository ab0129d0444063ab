"""LLM Provider implementation using Anthropic Claude API."""

import os
from dataclasses import dataclass, field
from typing import Literal, Protocol

import anthropic

from ..errors import (
    ConfigurationError,
    InvalidApiKeyError,
    ProviderError,
    ProviderTimeoutError,
    RateLimitError,
)
from ..models import TokenUsage
from .pricing import get_cost_usd
from .retry import retry_with_backoff

FinishReason = Literal["stop", "tool_calls", "length", "error"]

_STOP_REASONS: dict[str, FinishReason] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
}


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict


@dataclass
class LLMResponse:
    content: str
    token_usage: TokenUsage
    finish_reason: FinishReason = "stop"
    tool_calls: list[ToolCall] = field(default_factory=list)


class ILLMProvider(Protocol):
    """Abstraction for LLM access."""

    name: str

    async def chat(
        self,
        messages: list[dict],  # [{"role": "user", "content": "..."}]
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> LLMResponse:
        """Generate a chat completion."""
        ...

    def estimate_cost(self, token_usage: TokenUsage, model: str) -> float:
        """Dollar cost of ``token_usage`` on ``model``."""
        ...


class AnthropicProvider:
    """Anthropic Claude API provider."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        timeout_ms: int = 60000,
        max_attempts: int = 3,
        retry_initial_delay_ms: int = 1000,
    ):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY environment variable not set")

        self._timeout_ms = timeout_ms
        self._max_attempts = max_attempts
        self._retry_initial_delay_ms = retry_initial_delay_ms
        # SDK-level retries are disabled; retry_with_backoff owns the policy
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            timeout=timeout_ms / 1000,
            max_retries=0,
        )

    async def chat(
        self,
        messages: list[dict],
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[dict] | None = None,
    ) -> LLMResponse:
        """Generate completion using Claude API, retrying retryable failures."""
        return await retry_with_backoff(
            lambda: self._chat_once(messages, model, temperature, max_tokens, tools),
            max_attempts=self._max_attempts,
            initial_delay=self._retry_initial_delay_ms,
        )

    async def _chat_once(
        self,
        messages: list[dict],
        model: str,
        temperature: float | None,
        max_tokens: int | None,
        tools: list[dict] | None,
    ) -> LLMResponse:
        # Anthropic takes the system prompt separately from the turns
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [
            {
                "role": "assistant" if m["role"] == "assistant" else "user",
                "content": m["content"],
            }
            for m in messages
            if m["role"] != "system"
        ]

        request: dict = {
            "model": model,
            "messages": turns,
            "max_tokens": max_tokens or 4096,
        }
        if system:
            request["system"] = system
        if temperature is not None:
            request["temperature"] = temperature
        if tools:
            request["tools"] = [
                {
                    "name": tool["name"],
                    "description": tool.get("description", ""),
                    "input_schema": tool.get("parameters") or {"type": "object", "properties": {}},
                }
                for tool in tools
            ]

        try:
            response = await self._client.messages.create(**request)
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError(self.name, self._timeout_ms) from e
        except anthropic.RateLimitError as e:
            retry_after = e.response.headers.get("retry-after")
            raise RateLimitError(self.name, float(retry_after) if retry_after else None) from e
        except anthropic.AuthenticationError as e:
            raise InvalidApiKeyError(self.name) from e
        except anthropic.APIStatusError as e:
            raise ProviderError(f"LLM API error: {e}", e.status_code, self.name) from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(f"LLM API connection error: {e}", None, self.name) from e

        text_parts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input)))

        prompt_tokens = response.usage.input_tokens
        completion_tokens = response.usage.output_tokens
        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            token_usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            finish_reason=_STOP_REASONS.get(response.stop_reason, "stop"),
        )

    def estimate_cost(self, token_usage: TokenUsage, model: str) -> float:
        return get_cost_usd(model, token_usage)
