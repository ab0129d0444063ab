"""Agent execution and registry."""

from .agent import Agent, AgentState, calculate_backoff
from .runtime import AgentRuntime, IAgentRuntime

__all__ = ["Agent", "AgentRuntime", "AgentState", "IAgentRuntime", "calculate_backoff"]
