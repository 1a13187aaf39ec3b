"""Configuration for the market analysis agent."""

from market_agent.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
