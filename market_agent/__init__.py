"""Agentic market analysis system."""

from market_agent.orchestration.orchestrator import AnalysisOrchestrator
from market_agent.tools.market_tools import build_default_registry

__all__ = ["AnalysisOrchestrator", "build_default_registry"]
