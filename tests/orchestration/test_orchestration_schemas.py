"""Tests for plan, request and prediction schemas."""

import pytest
from pydantic import ValidationError

from market_agent.orchestration.schemas import (
    AnalysisPlan,
    AnalysisStep,
    PredictionRequest,
    RunMetadata,
    RunPreferences,
    StepKind,
)
from market_agent.orchestration.state_schemas import OrchestratorState, RunState
from market_agent.memory import WorkingMemory


class TestAnalysisStep:
    """Test step parsing and aliases."""

    def test_parses_camel_case_payload(self):
        step = AnalysisStep.model_validate(
            {
                "type": "technical_analysis",
                "tool": "analyzeTechnicalPatterns",
                "parameters": {"primaryTimeframe": "1d"},
                "expectedInsight": "Patterns",
            }
        )

        assert step.kind == StepKind.TECHNICAL_ANALYSIS
        assert step.expected_insight == "Patterns"
        assert step.is_fallback is False

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            AnalysisStep.model_validate({"type": "astrology", "tool": "x"})

    def test_empty_tool_rejected(self):
        with pytest.raises(ValidationError):
            AnalysisStep(kind=StepKind.DATA_COLLECTION, tool="")

    def test_fallback_flag(self):
        step = AnalysisStep(
            kind=StepKind.DATA_COLLECTION,
            tool="getMarketData",
            parameters={"fallback": True, "basic": True},
        )

        assert step.is_fallback is True

    def test_serializes_with_aliases(self):
        plan = AnalysisPlan(
            rationale="r",
            steps=[AnalysisStep(kind=StepKind.DATA_COLLECTION, tool="getMarketData")],
        )

        dumped = plan.model_dump(by_alias=True, mode="json")

        assert dumped["steps"][0]["type"] == "data_collection"
        assert "expectedInsight" in dumped["steps"][0]


class TestRunInput:
    """Test preferences and request validation."""

    def test_default_preferences(self):
        prefs = RunPreferences()

        assert prefs.strategy == "comprehensive"
        assert prefs.risk_tolerance == "medium"
        assert prefs.time_preference.macro is None

    def test_preferences_from_camel_case(self):
        prefs = RunPreferences.model_validate(
            {"strategy": "momentum", "riskTolerance": "low", "timePreference": {"macro": "1_month"}}
        )

        assert prefs.strategy == "momentum"
        assert prefs.risk_tolerance == "low"
        assert prefs.time_preference.macro == "1_month"

    def test_invalid_strategy_rejected(self):
        with pytest.raises(ValidationError):
            RunPreferences.model_validate({"strategy": "yolo"})

    def test_request_accepts_symbol_alias(self):
        request = PredictionRequest.model_validate({"symbol": "AAPL"})

        assert request.subject == "AAPL"
        assert request.preferences == RunPreferences()

    @pytest.mark.parametrize("symbol", ["", "ABCDEFGHIJK"])
    def test_request_symbol_length(self, symbol):
        with pytest.raises(ValidationError):
            PredictionRequest.model_validate({"symbol": symbol})


class TestRunState:
    """Test per-run bookkeeping."""

    def test_record_tool_deduplicates(self):
        run = RunState(run_id="r", subject="AAPL", memory=WorkingMemory())

        run.record_tool("getMarketData")
        run.record_tool("getNewsSentiment")
        run.record_tool("getMarketData")

        assert run.tools_used == ["getMarketData", "getNewsSentiment"]

    def test_record_data_source_deduplicates(self):
        run = RunState(run_id="r", subject="AAPL", memory=WorkingMemory())

        run.record_data_source("price_data")
        run.record_data_source("price_data")

        assert run.data_sources == ["price_data"]

    def test_run_metadata_is_frozen(self):
        metadata = RunMetadata(strategy="technical_focused")

        with pytest.raises(ValidationError):
            metadata.reasoning_steps = 5

    def test_orchestrator_state_fields(self):
        for field in ["run", "preferences", "plan", "prediction", "next_action"]:
            assert field in OrchestratorState.__annotations__
