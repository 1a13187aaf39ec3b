"""Tests for the rule-based synthesizer."""

import pytest

from market_agent.errors import ErrorKind
from market_agent.memory import AnalysisContext, WorkingMemory
from market_agent.orchestration.synthesizer import (
    RuleBasedSynthesizer,
    Synthesizer,
    fallback_prediction,
    run_synthesizer,
)
from market_agent.tools.results import (
    MarketRegimeResult,
    NewsSentimentResult,
    SupportResistanceResult,
    TechnicalAnalysisResult,
    TimeframeAlignmentResult,
    ToolFailure,
)


def technical(rsi=58.5, macd=1.2, ma20=182.4, ma50=179.8, patterns=None) -> TechnicalAnalysisResult:
    return TechnicalAnalysisResult.model_validate(
        {
            "symbol": "AAPL",
            "patterns": patterns or [],
            "keyLevels": {"support": [180.5, 178.2, 175.8], "resistance": [185.3, 187.8, 190.2]},
            "indicators": {
                "rsi": rsi,
                "macd": macd,
                "movingAverage20": ma20,
                "movingAverage50": ma50,
            },
        }
    )


def sentiment(score: float) -> NewsSentimentResult:
    return NewsSentimentResult(symbol="AAPL", overall_sentiment=score)


class TestRuleBasedSynthesizer:
    """Test direction scoring, key levels and risk factors."""

    def test_satisfies_protocol(self):
        assert isinstance(RuleBasedSynthesizer(), Synthesizer)

    def test_bullish_prediction(self):
        context = AnalysisContext(
            confirmed_facts={
                "technical_analysis": technical(
                    patterns=[{"name": "Consolidation", "confidence": 0.7, "timeframe": "1h"}]
                ),
                "sentiment_analysis": sentiment(0.7),
            }
        )

        prediction = RuleBasedSynthesizer().synthesize(context)

        assert prediction.macro_trend.direction == "bullish"
        assert prediction.macro_trend.confidence == pytest.approx(0.82)
        assert prediction.macro_trend.timeframe == "2_weeks"
        assert prediction.micro_trend.direction == "consolidation_bullish"
        assert prediction.micro_trend.confidence == pytest.approx(0.72)
        assert prediction.micro_trend.timeframe == "3_days"

    def test_bearish_prediction(self):
        context = AnalysisContext(
            confirmed_facts={"technical_analysis": technical(rsi=40, macd=-0.5, ma20=170, ma50=175)}
        )

        prediction = RuleBasedSynthesizer().synthesize(context)

        assert prediction.macro_trend.direction == "bearish"
        assert prediction.macro_trend.confidence == pytest.approx(0.74)
        assert prediction.micro_trend.direction == "bearish"

    def test_weak_bias_is_consolidation(self):
        context = AnalysisContext(
            confirmed_facts={"technical_analysis": technical(rsi=50, macd=0.5, ma20=180, ma50=180)}
        )

        prediction = RuleBasedSynthesizer().synthesize(context)

        assert prediction.macro_trend.direction == "consolidation"
        assert prediction.micro_trend.direction == "neutral"

    def test_key_levels(self):
        context = AnalysisContext(confirmed_facts={"technical_analysis": technical()})

        levels = RuleBasedSynthesizer().synthesize(context).key_levels

        assert levels.immediate_support == [180.5, 178.2]
        assert levels.immediate_resistance == [185.3, 187.8]
        assert levels.breakout_level == 190.2

    def test_support_resistance_levels_merge(self):
        context = AnalysisContext(
            confirmed_facts={
                "technical_analysis": SupportResistanceResult(
                    symbol="AAPL", support=[100.0, 99.0], resistance=[105.0, 110.0]
                )
            }
        )

        levels = RuleBasedSynthesizer().synthesize(context).key_levels

        assert levels.immediate_support == [100.0, 99.0]
        assert levels.breakout_level == 110.0

    def test_risk_factors(self):
        context = AnalysisContext(
            confirmed_facts={
                "technical_analysis": technical(rsi=75),
                "sentiment_analysis": sentiment(0.3),
                "synthesis": TimeframeAlignmentResult(
                    symbol="AAPL", conflicts=["4h overbought"], overall_bias="bullish"
                ),
                "data_collection": MarketRegimeResult(symbol="AAPL", regime="ranging", volatility="high"),
            }
        )

        risks = RuleBasedSynthesizer().synthesize(context).risk_factors

        assert "Overbought conditions (RSI 75)" in risks
        assert "Timeframe conflict: 4h overbought" in risks
        assert "News sentiment diverges from technical picture" in risks
        assert "Elevated volatility regime" in risks

    def test_missing_sentiment_is_a_risk(self):
        context = AnalysisContext(confirmed_facts={"technical_analysis": technical()})

        risks = RuleBasedSynthesizer().synthesize(context).risk_factors

        assert "No news sentiment coverage" in risks

    def test_empty_context_gives_fallback_shape(self):
        prediction = RuleBasedSynthesizer().synthesize(WorkingMemory().get_context())

        assert prediction.macro_trend.direction == "neutral"
        assert prediction.macro_trend.confidence == 0.5
        assert prediction.micro_trend.direction == "neutral"
        assert prediction.key_levels.immediate_support == []
        assert prediction.key_levels.breakout_level is None
        assert prediction.risk_factors == ["Insufficient confirmed data for analysis"]

    def test_failures_are_ignored(self):
        failure = ToolFailure(
            symbol="AAPL", error="boom", error_kind=ErrorKind.TOOL_EXECUTION, tool="x"
        )
        context = AnalysisContext(confirmed_facts={"data_collection": failure})

        prediction = RuleBasedSynthesizer().synthesize(context)

        assert prediction.risk_factors == ["Insufficient confirmed data for analysis"]

    def test_custom_timeframes(self):
        synthesizer = RuleBasedSynthesizer(macro_timeframe="1_month", micro_timeframe="1_day")

        prediction = synthesizer.synthesize(
            AnalysisContext(confirmed_facts={"technical_analysis": technical()})
        )

        assert prediction.macro_trend.timeframe == "1_month"
        assert prediction.micro_trend.timeframe == "1_day"

    def test_deterministic(self):
        context = AnalysisContext(
            confirmed_facts={"technical_analysis": technical(), "sentiment_analysis": sentiment(0.6)}
        )
        synthesizer = RuleBasedSynthesizer()

        assert synthesizer.synthesize(context) == synthesizer.synthesize(context)


class TestSynthesisHelpers:
    """Test fallback_prediction and run_synthesizer."""

    def test_fallback_prediction(self):
        prediction = fallback_prediction(["Analysis system encountered errors"], "notes")

        assert prediction.macro_trend.direction == "neutral"
        assert prediction.macro_trend.rationale == "Insufficient data for confident prediction"
        assert prediction.risk_factors == ["Analysis system encountered errors"]
        assert prediction.agent_notes == "notes"

    @pytest.mark.asyncio
    async def test_run_synthesizer_accepts_async(self):
        expected = fallback_prediction([], "async")

        class AsyncSynthesizer:
            async def synthesize(self, context):
                return expected

        result = await run_synthesizer(AsyncSynthesizer(), AnalysisContext())

        assert result is expected

    @pytest.mark.asyncio
    async def test_run_synthesizer_accepts_sync(self):
        result = await run_synthesizer(RuleBasedSynthesizer(), AnalysisContext())

        assert result.macro_trend.direction == "neutral"
