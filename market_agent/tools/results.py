"""Tagged result shapes produced by market tools.

Every tool result carries a ``kind`` tag so the orchestrator and
synthesizer can dispatch on the shape instead of sniffing dictionary keys.
ToolFailure is the synthetic result stored when a step cannot produce a
real one; it is always tagged ``fallback=True``.
"""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from market_agent.errors import ErrorKind


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ToolResult(BaseModel):
    """Fields shared by every tool result."""

    symbol: str = ""
    timestamp: str = Field(default_factory=_utc_iso)
    insufficient_data: bool = Field(
        default=False,
        alias="insufficientData",
        description="Tool ran but could not gather enough data",
    )

    model_config = {"populate_by_name": True}


class MarketDataPoint(BaseModel):
    timeframe: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class MarketDataResult(ToolResult):
    """OHLCV bars across one or more timeframes."""

    kind: Literal["market_data"] = "market_data"
    timeframes: list[str] = Field(default_factory=list)
    data: list[MarketDataPoint] = Field(default_factory=list)


class NewsArticle(BaseModel):
    headline: str
    source: str
    sentiment: float = Field(..., ge=0.0, le=1.0)
    published_at: str = Field(..., alias="publishedAt")

    model_config = {"populate_by_name": True}


class NewsSentimentResult(ToolResult):
    """Recent headlines and an aggregate sentiment score in [0, 1]."""

    kind: Literal["news_sentiment"] = "news_sentiment"
    lookback_hours: int = Field(default=24, alias="lookbackHours")
    articles: list[NewsArticle] = Field(default_factory=list)
    overall_sentiment: float = Field(default=0.5, ge=0.0, le=1.0, alias="overallSentiment")


class TechnicalPattern(BaseModel):
    name: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    timeframe: str


class PriceLevels(BaseModel):
    support: list[float] = Field(default_factory=list)
    resistance: list[float] = Field(default_factory=list)


class Indicators(BaseModel):
    rsi: float
    macd: float
    moving_average_20: float = Field(..., alias="movingAverage20")
    moving_average_50: float = Field(..., alias="movingAverage50")

    model_config = {"populate_by_name": True}


class TechnicalAnalysisResult(ToolResult):
    """Chart patterns, key levels and indicator readings."""

    kind: Literal["technical_analysis"] = "technical_analysis"
    patterns: list[TechnicalPattern] = Field(default_factory=list)
    key_levels: PriceLevels = Field(default_factory=PriceLevels, alias="keyLevels")
    indicators: Optional[Indicators] = None


class SupportResistanceResult(ToolResult):
    kind: Literal["support_resistance"] = "support_resistance"
    support: list[float] = Field(default_factory=list)
    resistance: list[float] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class TimeframeAlignmentResult(ToolResult):
    kind: Literal["timeframe_alignment"] = "timeframe_alignment"
    alignment: str = "unknown"
    conflicts: list[str] = Field(default_factory=list)
    overall_bias: str = Field(default="neutral", alias="overallBias")


class MarketRegimeResult(ToolResult):
    kind: Literal["market_regime"] = "market_regime"
    regime: str = "unknown"
    volatility: str = "medium"
    trend_strength: float = Field(default=0.0, ge=0.0, le=1.0, alias="trendStrength")


class GenericToolResult(ToolResult):
    """Wrapper for tools that do not declare a result model."""

    kind: Literal["generic"] = "generic"
    tool: str
    payload: Any = None


class ToolFailure(ToolResult):
    """Synthetic fallback result for a step that failed."""

    kind: Literal["failure"] = "failure"
    error: str
    error_kind: ErrorKind
    fallback: Literal[True] = True
    tool: str


# Data source label reported in run metadata for each result kind
DATA_SOURCE_LABELS: dict[str, str] = {
    "market_data": "price_data",
    "technical_analysis": "technical_indicators",
    "news_sentiment": "news_sentiment",
    "support_resistance": "support_resistance",
    "timeframe_alignment": "timeframe_alignment",
    "market_regime": "market_regime",
}


def data_points(result: ToolResult) -> list[Any]:
    """
    Return the data collection carried by a result.

    Results without a data collection yield an empty list, which makes
    them count as empty for plan-adjustment purposes.
    """
    if isinstance(result, MarketDataResult):
        return list(result.data)
    if isinstance(result, GenericToolResult) and isinstance(result.payload, dict):
        data = result.payload.get("data")
        if isinstance(data, (list, tuple)):
            return list(data)
    return []
