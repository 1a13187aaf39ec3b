"""Synthesis of a working-memory context into a prediction.

RuleBasedSynthesizer is a pure function of the AnalysisContext it is
given: the same context always yields the same prediction. Only confirmed
facts holding tool results are read; fallback results never are.

Bias scoring:
- Technical indicators: RSI above 55 / below 45, MACD sign, MA20 vs MA50
- News sentiment: overall score above 0.55 / below 0.45
- Price data: first open vs last close, beyond +/-0.5%
- Market regime: bullish / bearish regimes, halved when trend is weak
- Timeframe alignment: overall bias
Each signal contributes +1 or -1 (regime may contribute 0.5).
"""

import inspect
from typing import Awaitable, Protocol, Union, runtime_checkable

from loguru import logger

from market_agent.memory.schemas import AnalysisContext
from market_agent.orchestration.schemas import (
    KeyLevels,
    MacroTrend,
    MicroTrend,
    PredictionData,
)
from market_agent.tools.results import (
    MarketDataResult,
    MarketRegimeResult,
    NewsSentimentResult,
    SupportResistanceResult,
    TechnicalAnalysisResult,
    TimeframeAlignmentResult,
    ToolFailure,
    ToolResult,
)

DEFAULT_MACRO_TIMEFRAME = "2_weeks"
DEFAULT_MICRO_TIMEFRAME = "3_days"

# Absolute bias score needed for a directional macro call
DIRECTIONAL_SCORE = 2.0
CONFIDENCE_PER_SCORE = 0.08
MAX_CONFIDENCE_BOOST = 0.35

OVERBOUGHT_RSI = 70.0
OVERSOLD_RSI = 30.0

EXPECTED_ACTIONS = {
    "bullish": "Expect continuation higher toward immediate resistance",
    "bearish": "Expect continuation lower toward immediate support",
    "neutral": "Market likely to continue current range",
    "consolidation_bullish": "Expected consolidation between key levels followed by breakout",
    "consolidation_bearish": "Expected consolidation between key levels followed by breakdown",
}


@runtime_checkable
class Synthesizer(Protocol):
    """Folds an AnalysisContext into a PredictionData; must be pure."""

    def synthesize(
        self, context: AnalysisContext
    ) -> Union[PredictionData, Awaitable[PredictionData]]:
        ...


async def run_synthesizer(synthesizer: Synthesizer, context: AnalysisContext) -> PredictionData:
    """Call a sync or async synthesizer and return its prediction."""
    result = synthesizer.synthesize(context)
    if inspect.isawaitable(result):
        result = await result
    return result


def fallback_prediction(
    risk_factors: list[str],
    agent_notes: str,
    rationale: str = "Insufficient data for confident prediction",
    macro_timeframe: str = DEFAULT_MACRO_TIMEFRAME,
    micro_timeframe: str = DEFAULT_MICRO_TIMEFRAME,
) -> PredictionData:
    """Neutral prediction with empty key levels."""
    return PredictionData(
        macro_trend=MacroTrend(
            direction="neutral",
            confidence=0.5,
            timeframe=macro_timeframe,
            rationale=rationale,
        ),
        micro_trend=MicroTrend(
            direction="neutral",
            confidence=0.5,
            timeframe=micro_timeframe,
            expected_action=EXPECTED_ACTIONS["neutral"],
        ),
        key_levels=KeyLevels(),
        risk_factors=list(risk_factors),
        agent_notes=agent_notes,
    )


class RuleBasedSynthesizer:
    """
    Deterministic rule-based synthesizer.

    Attributes:
        macro_timeframe: Timeframe label for the macro trend
        micro_timeframe: Timeframe label for the micro trend
    """

    def __init__(
        self,
        macro_timeframe: str = DEFAULT_MACRO_TIMEFRAME,
        micro_timeframe: str = DEFAULT_MICRO_TIMEFRAME,
    ):
        self.macro_timeframe = macro_timeframe
        self.micro_timeframe = micro_timeframe
        self.logger = logger.bind(component="RuleBasedSynthesizer")

    def synthesize(self, context: AnalysisContext) -> PredictionData:
        """
        Build a prediction from the confirmed facts of ``context``.

        Args:
            context: Working memory snapshot

        Returns:
            PredictionData; a neutral fallback-shaped prediction when the
            context holds no usable tool results
        """
        results = [
            value
            for value in context.confirmed_facts.values()
            if isinstance(value, ToolResult) and not isinstance(value, ToolFailure)
        ]

        if not results:
            self.logger.info("No usable facts in context, returning neutral prediction")
            return fallback_prediction(
                risk_factors=["Insufficient confirmed data for analysis"],
                agent_notes="No confirmed facts were available for synthesis",
                macro_timeframe=self.macro_timeframe,
                micro_timeframe=self.micro_timeframe,
            )

        technical = [r for r in results if isinstance(r, TechnicalAnalysisResult)]
        sentiment = [r for r in results if isinstance(r, NewsSentimentResult)]
        market = [r for r in results if isinstance(r, MarketDataResult)]
        regimes = [r for r in results if isinstance(r, MarketRegimeResult)]
        alignments = [r for r in results if isinstance(r, TimeframeAlignmentResult)]
        levels = [r for r in results if isinstance(r, SupportResistanceResult)]

        technical_signals = self._technical_signals(technical)
        sentiment_signals = self._sentiment_signals(sentiment)
        signals = (
            technical_signals
            + sentiment_signals
            + self._price_signals(market)
            + self._regime_signals(regimes)
            + self._alignment_signals(alignments)
        )
        score = sum(weight for _, weight in signals)

        macro = self._macro_trend(signals, score)
        micro = self._micro_trend(macro, technical)
        key_levels = self._key_levels(technical, levels)

        risk_factors = self._risk_factors(
            context,
            technical=technical,
            sentiment=sentiment,
            regimes=regimes,
            alignments=alignments,
            levels=levels,
            technical_score=sum(w for _, w in technical_signals),
            sentiment_score=sum(w for _, w in sentiment_signals),
        )

        summary = context.analysis_summary
        notes = (
            f"Synthesized from {len(context.confirmed_facts)} confirmed facts "
            f"({', '.join(sorted(context.confirmed_facts))}); "
            f"{summary.active_hypotheses} active hypotheses; "
            f"{summary.total_evidence} evidence items"
        )

        self.logger.info(
            "Prediction synthesized",
            macro=macro.direction,
            micro=micro.direction,
            score=score,
        )
        return PredictionData(
            macro_trend=macro,
            micro_trend=micro,
            key_levels=key_levels,
            risk_factors=risk_factors,
            agent_notes=notes,
        )

    @staticmethod
    def _technical_signals(results: list[TechnicalAnalysisResult]) -> list[tuple[str, float]]:
        signals = []
        for result in results:
            indicators = result.indicators
            if indicators is None:
                continue
            if indicators.rsi > 55:
                signals.append((f"RSI {indicators.rsi:g} above 55", 1.0))
            elif indicators.rsi < 45:
                signals.append((f"RSI {indicators.rsi:g} below 45", -1.0))
            if indicators.macd > 0:
                signals.append(("positive MACD", 1.0))
            elif indicators.macd < 0:
                signals.append(("negative MACD", -1.0))
            if indicators.moving_average_20 > indicators.moving_average_50:
                signals.append(("20-period average above 50-period", 1.0))
            elif indicators.moving_average_20 < indicators.moving_average_50:
                signals.append(("20-period average below 50-period", -1.0))
        return signals

    @staticmethod
    def _sentiment_signals(results: list[NewsSentimentResult]) -> list[tuple[str, float]]:
        signals = []
        for result in results:
            if result.overall_sentiment > 0.55:
                signals.append(("positive news sentiment", 1.0))
            elif result.overall_sentiment < 0.45:
                signals.append(("negative news sentiment", -1.0))
        return signals

    @staticmethod
    def _price_signals(results: list[MarketDataResult]) -> list[tuple[str, float]]:
        signals = []
        for result in results:
            if not result.data or result.data[0].open == 0:
                continue
            change = (result.data[-1].close - result.data[0].open) / result.data[0].open
            if change > 0.005:
                signals.append(("rising price structure", 1.0))
            elif change < -0.005:
                signals.append(("falling price structure", -1.0))
        return signals

    @staticmethod
    def _regime_signals(results: list[MarketRegimeResult]) -> list[tuple[str, float]]:
        signals = []
        for result in results:
            weight = 1.0 if result.trend_strength >= 0.5 else 0.5
            if "bullish" in result.regime:
                signals.append((f"{result.regime} regime", weight))
            elif "bearish" in result.regime:
                signals.append((f"{result.regime} regime", -weight))
        return signals

    @staticmethod
    def _alignment_signals(results: list[TimeframeAlignmentResult]) -> list[tuple[str, float]]:
        signals = []
        for result in results:
            if result.overall_bias == "bullish":
                signals.append(("bullish timeframe alignment", 1.0))
            elif result.overall_bias == "bearish":
                signals.append(("bearish timeframe alignment", -1.0))
        return signals

    def _macro_trend(self, signals: list[tuple[str, float]], score: float) -> MacroTrend:
        if not signals:
            return MacroTrend(
                direction="neutral",
                confidence=0.5,
                timeframe=self.macro_timeframe,
                rationale="No directional signals in confirmed facts",
            )

        if score >= DIRECTIONAL_SCORE:
            direction = "bullish"
        elif score <= -DIRECTIONAL_SCORE:
            direction = "bearish"
        else:
            direction = "consolidation"

        confidence = round(0.5 + min(abs(score) * CONFIDENCE_PER_SCORE, MAX_CONFIDENCE_BOOST), 2)
        rationale = "Based on " + ", ".join(label for label, _ in signals)
        return MacroTrend(
            direction=direction,
            confidence=confidence,
            timeframe=self.macro_timeframe,
            rationale=rationale,
        )

    def _micro_trend(self, macro: MacroTrend, technical: list[TechnicalAnalysisResult]) -> MicroTrend:
        consolidating = any(
            "consolidation" in pattern.name.lower() and pattern.confidence >= 0.6
            for result in technical
            for pattern in result.patterns
        )

        if macro.direction == "bullish":
            direction = "consolidation_bullish" if consolidating else "bullish"
        elif macro.direction == "bearish":
            direction = "consolidation_bearish" if consolidating else "bearish"
        else:
            direction = "neutral"

        return MicroTrend(
            direction=direction,
            confidence=round(max(0.5, macro.confidence - 0.1), 2),
            timeframe=self.micro_timeframe,
            expected_action=EXPECTED_ACTIONS[direction],
        )

    @staticmethod
    def _key_levels(
        technical: list[TechnicalAnalysisResult],
        levels: list[SupportResistanceResult],
    ) -> KeyLevels:
        supports = {s for r in technical for s in r.key_levels.support}
        supports.update(s for r in levels for s in r.support)
        resistances = {s for r in technical for s in r.key_levels.resistance}
        resistances.update(s for r in levels for s in r.resistance)

        return KeyLevels(
            immediate_support=sorted(supports, reverse=True)[:2],
            immediate_resistance=sorted(resistances)[:2],
            breakout_level=max(resistances) if resistances else None,
        )

    @staticmethod
    def _risk_factors(
        context: AnalysisContext,
        *,
        technical: list[TechnicalAnalysisResult],
        sentiment: list[NewsSentimentResult],
        regimes: list[MarketRegimeResult],
        alignments: list[TimeframeAlignmentResult],
        levels: list[SupportResistanceResult],
        technical_score: float,
        sentiment_score: float,
    ) -> list[str]:
        risks: list[str] = []

        for result in technical:
            if result.indicators is None:
                continue
            if result.indicators.rsi >= OVERBOUGHT_RSI:
                risks.append(f"Overbought conditions (RSI {result.indicators.rsi:g})")
            elif result.indicators.rsi <= OVERSOLD_RSI:
                risks.append(f"Oversold conditions (RSI {result.indicators.rsi:g})")

        for result in alignments:
            risks.extend(f"Timeframe conflict: {conflict}" for conflict in result.conflicts)

        if technical_score * sentiment_score < 0:
            risks.append("News sentiment diverges from technical picture")

        if any(result.volatility == "high" for result in regimes):
            risks.append("Elevated volatility regime")

        if not sentiment:
            risks.append("No news sentiment coverage")

        if not technical and not levels:
            risks.append("Key levels unconfirmed by technical analysis")

        excluded = context.analysis_summary.total_facts - len(context.confirmed_facts)
        if excluded > 0:
            risks.append(f"{excluded} low-confidence inputs excluded from synthesis")

        if not risks:
            risks.append("No elevated risk signals detected")
        return risks
