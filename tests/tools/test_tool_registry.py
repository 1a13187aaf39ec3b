"""Tests for the immutable ToolRegistry."""

import pytest
from unittest.mock import AsyncMock

from market_agent.tools.registry import ToolRegistry, ToolSpec
from market_agent.tools.results import MarketDataResult


def make_spec(name: str, description: str = "test tool") -> ToolSpec:
    return ToolSpec(
        name=name,
        description=description,
        execute=AsyncMock(return_value={"data": []}),
        parameter_schema={"type": "object", "properties": {"symbol": {"type": "string"}}},
        result_model=MarketDataResult,
    )


class TestToolRegistry:
    """Test lookup, immutability and substitution."""

    def test_lookup_by_name(self):
        spec = make_spec("getMarketData")
        registry = ToolRegistry([spec, make_spec("getNewsSentiment")])

        assert registry.get("getMarketData") is spec
        assert registry.get("missing") is None
        assert "getNewsSentiment" in registry
        assert len(registry) == 2

    def test_names_preserve_registration_order(self):
        registry = ToolRegistry([make_spec("b"), make_spec("a"), make_spec("c")])

        assert registry.names() == ["b", "a", "c"]
        assert [spec.name for spec in registry] == ["b", "a", "c"]

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="Duplicate tool name"):
            ToolRegistry([make_spec("a"), make_spec("a")])

    def test_mapping_cannot_be_mutated(self):
        registry = ToolRegistry([make_spec("a")])

        with pytest.raises(TypeError):
            registry._tools["b"] = make_spec("b")

    def test_with_tool_returns_new_registry(self):
        """Test substitution leaves the original registry untouched."""
        original_spec = make_spec("a", "original")
        registry = ToolRegistry([original_spec])
        replacement = make_spec("a", "replacement")

        substituted = registry.with_tool(replacement)

        assert substituted.get("a") is replacement
        assert registry.get("a") is original_spec
        assert substituted is not registry

    def test_with_tool_adds_new_name(self):
        registry = ToolRegistry([make_spec("a")]).with_tool(make_spec("b"))

        assert registry.names() == ["a", "b"]

    def test_without_tool(self):
        registry = ToolRegistry([make_spec("a"), make_spec("b")])

        reduced = registry.without_tool("a")

        assert reduced.names() == ["b"]
        assert registry.names() == ["a", "b"]
        assert registry.without_tool("missing").names() == ["a", "b"]

    def test_describe(self):
        registry = ToolRegistry([make_spec("a", "fetch things")])

        described = registry.describe()

        assert described == [
            {
                "name": "a",
                "description": "fetch things",
                "parameters": {"type": "object", "properties": {"symbol": {"type": "string"}}},
            }
        ]

    def test_empty_registry(self):
        registry = ToolRegistry()

        assert len(registry) == 0
        assert registry.names() == []
