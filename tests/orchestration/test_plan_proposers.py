"""Tests for heuristic and LLM plan proposers."""

import json

import pytest
from unittest.mock import AsyncMock, Mock

from market_agent.errors import PlanFormulationError
from market_agent.orchestration.planner import (
    HeuristicPlanProposer,
    LLMPlanProposer,
    PlanProposer,
)
from market_agent.orchestration.schemas import AnalysisPlan, RunPreferences, StepKind
from market_agent.tools.market_tools import build_default_registry

ALL_TOOLS = build_default_registry().names()

VALID_PLAN = {
    "rationale": "Price then patterns",
    "steps": [
        {
            "type": "data_collection",
            "tool": "getMarketData",
            "parameters": {"timeframes": ["1d"]},
            "expectedInsight": "Price action",
        },
        {
            "type": "technical_analysis",
            "tool": "analyzeTechnicalPatterns",
            "parameters": {},
            "expectedInsight": "Patterns",
        },
    ],
}


class TestHeuristicPlanProposer:
    """Test strategy-aware static plans."""

    def test_satisfies_protocol(self):
        assert isinstance(HeuristicPlanProposer(), PlanProposer)

    @pytest.mark.asyncio
    async def test_comprehensive_plan(self):
        plan = await HeuristicPlanProposer().propose("AAPL", RunPreferences(), ALL_TOOLS)

        assert [step.tool for step in plan.steps] == [
            "getMarketData",
            "analyzeTechnicalPatterns",
            "getNewsSentiment",
        ]
        assert [step.kind for step in plan.steps] == [
            StepKind.DATA_COLLECTION,
            StepKind.TECHNICAL_ANALYSIS,
            StepKind.SENTIMENT_ANALYSIS,
        ]
        assert plan.steps[2].parameters["lookbackHours"] == 48
        assert plan.rationale

    @pytest.mark.asyncio
    async def test_low_risk_widens_lookback(self):
        prefs = RunPreferences(risk_tolerance="low")

        plan = await HeuristicPlanProposer().propose("AAPL", prefs, ALL_TOOLS)

        assert plan.steps[-1].parameters["lookbackHours"] == 72

    @pytest.mark.asyncio
    async def test_technical_plan_has_no_sentiment(self):
        prefs = RunPreferences(strategy="technical")

        plan = await HeuristicPlanProposer().propose("AAPL", prefs, ALL_TOOLS)

        tools = [step.tool for step in plan.steps]
        assert "getNewsSentiment" not in tools
        assert "detectSupportResistance" in tools

    @pytest.mark.asyncio
    async def test_momentum_plan(self):
        prefs = RunPreferences(strategy="momentum")

        plan = await HeuristicPlanProposer().propose("AAPL", prefs, ALL_TOOLS)

        assert [step.tool for step in plan.steps] == [
            "getMarketData",
            "assessMarketRegime",
            "compareTimeframes",
        ]

    @pytest.mark.asyncio
    async def test_only_registered_tools_emitted(self):
        plan = await HeuristicPlanProposer().propose(
            "AAPL", RunPreferences(), ["getMarketData"]
        )

        assert [step.tool for step in plan.steps] == ["getMarketData"]

    @pytest.mark.asyncio
    async def test_no_registered_tools_gives_empty_plan(self):
        plan = await HeuristicPlanProposer().propose("AAPL", RunPreferences(), [])

        assert plan.steps == []


class TestLLMPlanProposer:
    """Test LLM planning with a mocked client."""

    @pytest.mark.asyncio
    async def test_valid_json_plan(self):
        client = Mock()
        client.generate_content.return_value = json.dumps(VALID_PLAN)

        plan = await LLMPlanProposer(client=client).propose("AAPL", RunPreferences(), ALL_TOOLS)

        assert isinstance(plan, AnalysisPlan)
        assert [step.tool for step in plan.steps] == ["getMarketData", "analyzeTechnicalPatterns"]
        prompt = client.generate_content.call_args[0][0]
        assert "AAPL" in prompt
        assert "- getNewsSentiment" in prompt

    def test_parse_plan_tolerates_code_fence(self):
        text = "```json\n" + json.dumps(VALID_PLAN) + "\n```"

        plan = LLMPlanProposer.parse_plan(text)

        assert len(plan.steps) == 2

    def test_parse_plan_rejects_malformed_json(self):
        with pytest.raises(PlanFormulationError, match="not valid JSON"):
            LLMPlanProposer.parse_plan("Here is my plan: step one, fetch data")

    def test_parse_plan_rejects_invalid_schema(self):
        bad = {"steps": [{"type": "astrology", "tool": "x"}]}

        with pytest.raises(PlanFormulationError, match="validation"):
            LLMPlanProposer.parse_plan(json.dumps(bad))

    def test_parse_plan_rejects_empty_steps(self):
        with pytest.raises(PlanFormulationError, match="no steps"):
            LLMPlanProposer.parse_plan(json.dumps({"rationale": "nothing", "steps": []}))

    @pytest.mark.asyncio
    async def test_client_error_raises_plan_formulation_error(self):
        client = Mock()
        client.generate_content.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(PlanFormulationError, match="quota exceeded"):
            await LLMPlanProposer(client=client).propose("AAPL", RunPreferences(), ALL_TOOLS)

    @pytest.mark.asyncio
    async def test_falls_back_on_malformed_output(self):
        client = Mock()
        client.generate_content.return_value = "not json"
        fallback = Mock()
        fallback.propose = AsyncMock(return_value=AnalysisPlan(rationale="fallback"))

        plan = await LLMPlanProposer(client=client, fallback=fallback).propose(
            "AAPL", RunPreferences(), ALL_TOOLS
        )

        assert plan.rationale == "fallback"
        fallback.propose.assert_awaited_once()
