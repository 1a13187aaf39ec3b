"""Agent base classes."""

from market_agent.agents.base_agent import BaseAgent

__all__ = ["BaseAgent"]
