"""Market analysis tools.

- ToolRegistry / ToolSpec: immutable tool contracts shared by runs
- Tagged result models produced by tools
- Mock market tool provider
"""

from market_agent.tools.registry import ToolRegistry, ToolSpec
from market_agent.tools.market_tools import (
    MockMarketDataService,
    build_default_registry,
    build_market_tools,
)

__all__ = [
    "ToolRegistry",
    "ToolSpec",
    "MockMarketDataService",
    "build_default_registry",
    "build_market_tools",
]
