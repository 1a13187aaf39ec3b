"""Tool registry for capability lookup by tool name.

The registry is built once and never mutated afterwards: it is the only
object shared between concurrent analysis runs, and runs only read from
it. Substituting a tool (for a test, or a different data provider)
produces a new registry via ``with_tool``.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Type

from loguru import logger

from market_agent.tools.results import ToolResult


ToolExecutor = Callable[[Dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class ToolSpec:
    """
    Executable contract for a single tool.

    Attributes:
        name: Unique tool name referenced by analysis steps
        description: Human-readable purpose, shown to plan proposers
        execute: Async callable receiving the enriched parameter dict
        parameter_schema: JSON-schema-like description of accepted parameters
        result_model: Tagged ToolResult subclass used to validate dict results
    """

    name: str
    description: str
    execute: ToolExecutor
    parameter_schema: Dict[str, Any] = field(default_factory=dict)
    result_model: Optional[Type[ToolResult]] = None

    def describe(self) -> Dict[str, Any]:
        """Return the serializable part of the contract."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": dict(self.parameter_schema),
        }


class ToolRegistry:
    """
    Immutable name -> ToolSpec mapping.

    Features:
    - Duplicate names rejected at construction
    - O(1) lookup by tool name
    - Copy-on-write substitution with ``with_tool``
    - Safe for concurrent read-only use (no locks, no mutation)
    """

    def __init__(self, tools: Iterable[ToolSpec] = ()):
        """
        Build the registry.

        Args:
            tools: Tool specs to register

        Raises:
            ValueError: If two specs share a name
        """
        entries: Dict[str, ToolSpec] = {}
        for spec in tools:
            if spec.name in entries:
                raise ValueError(f"Duplicate tool name: {spec.name}")
            entries[spec.name] = spec

        self._tools = MappingProxyType(entries)
        self.logger = logger.bind(component="ToolRegistry")
        self.logger.debug("ToolRegistry built", tools=list(entries))

    def get(self, name: str) -> Optional[ToolSpec]:
        """
        Look up a tool by name.

        Args:
            name: Tool name

        Returns:
            ToolSpec if registered, None otherwise
        """
        return self._tools.get(name)

    def names(self) -> List[str]:
        """Registered tool names in registration order."""
        return list(self._tools)

    def with_tool(self, spec: ToolSpec) -> "ToolRegistry":
        """
        Return a new registry with ``spec`` added or replacing a same-named tool.

        The current registry is left untouched.
        """
        tools = dict(self._tools)
        tools[spec.name] = spec
        return ToolRegistry(tools.values())

    def without_tool(self, name: str) -> "ToolRegistry":
        """Return a new registry lacking ``name`` (no-op copy if absent)."""
        return ToolRegistry(spec for key, spec in self._tools.items() if key != name)

    def describe(self) -> List[Dict[str, Any]]:
        """Serializable contracts for every registered tool."""
        return [spec.describe() for spec in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())
