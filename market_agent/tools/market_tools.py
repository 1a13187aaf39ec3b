"""Mock market tool provider.

Stands in for the real time-series ingestion and indicator subsystem.
Outputs are deterministic per symbol so whole runs are reproducible:
prices derive from a per-symbol base price and the news sentiment is
drawn from a generator seeded with the symbol.

Usage:
    from market_agent.tools.market_tools import build_default_registry

    registry = build_default_registry()
    orchestrator = AnalysisOrchestrator(registry)
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from loguru import logger

from market_agent.tools.registry import ToolRegistry, ToolSpec
from market_agent.tools.results import (
    MarketDataResult,
    MarketRegimeResult,
    NewsSentimentResult,
    SupportResistanceResult,
    TechnicalAnalysisResult,
    TimeframeAlignmentResult,
)

BASE_PRICES: Dict[str, float] = {
    "AAPL": 185.0,
    "XAUUSD": 2650.0,
}
DEFAULT_BASE_PRICE = 450.0

DEFAULT_TIMEFRAMES = ["1h", "4h", "1d"]

# Offsets from the base price for the mock key levels
SUPPORT_OFFSETS = [-4.5, -6.8, -9.2]
RESISTANCE_OFFSETS = [0.3, 2.8, 5.2]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def base_price(symbol: str) -> float:
    return BASE_PRICES.get(symbol.upper(), DEFAULT_BASE_PRICE)


class MockMarketDataService:
    """
    Deterministic stand-in for market data, news and indicator services.

    Attributes:
        latency_seconds: Simulated I/O delay per call (0 disables it)
    """

    def __init__(self, latency_seconds: float = 0.0):
        self.latency_seconds = latency_seconds
        self.logger = logger.bind(component="MockMarketDataService")

    async def _simulate_latency(self, factor: float = 1.0) -> None:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds * factor)

    async def get_market_data(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Fetch OHLCV bars; ``basic`` requests only return the daily bar."""
        self.logger.info("Fetching market data", params=params)
        await self._simulate_latency()

        symbol = params.get("symbol", "")
        timeframes = params.get("timeframes") or DEFAULT_TIMEFRAMES
        if params.get("basic"):
            timeframes = ["1d"]

        bars = [bar for bar in self._price_bars(symbol) if bar["timeframe"] in timeframes]
        return {
            "symbol": symbol,
            "timeframes": list(timeframes),
            "data": bars,
            "timestamp": _now_iso(),
        }

    async def get_news_sentiment(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.logger.info("Fetching news sentiment", params=params)
        await self._simulate_latency(1.5)

        symbol = params.get("symbol", "")
        return {
            "symbol": symbol,
            "lookbackHours": params.get("lookbackHours") or 24,
            "articles": self._news(symbol),
            "overallSentiment": self._sentiment(symbol),
            "timestamp": _now_iso(),
        }

    async def analyze_technical_patterns(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.logger.info("Analyzing technical patterns", params=params)
        await self._simulate_latency(2.0)

        symbol = params.get("symbol", "")
        base = base_price(symbol)
        support, resistance = self._levels(base)
        return {
            "symbol": symbol,
            "patterns": [
                {"name": "Uptrend Channel", "confidence": 0.75, "timeframe": "1d"},
                {"name": "Support Test", "confidence": 0.65, "timeframe": "4h"},
                {"name": "Consolidation", "confidence": 0.70, "timeframe": "1h"},
            ],
            "keyLevels": {"support": support, "resistance": resistance},
            "indicators": {
                "rsi": 58.5,
                "macd": 1.2,
                "movingAverage20": round(base - 2.6, 2),
                "movingAverage50": round(base - 5.2, 2),
            },
            "timestamp": _now_iso(),
        }

    async def detect_support_resistance(self, params: Dict[str, Any]) -> Dict[str, Any]:
        await self._simulate_latency()

        symbol = params.get("symbol", "")
        support, resistance = self._levels(base_price(symbol))
        return {
            "symbol": symbol,
            "support": support,
            "resistance": resistance,
            "confidence": 0.75,
            "timestamp": _now_iso(),
        }

    async def compare_timeframes(self, params: Dict[str, Any]) -> Dict[str, Any]:
        await self._simulate_latency()

        return {
            "symbol": params.get("symbol", ""),
            "alignment": "mostly_aligned",
            "conflicts": ["4h shows overbought while 1d remains bullish"],
            "overallBias": "bullish",
            "timestamp": _now_iso(),
        }

    async def assess_market_regime(self, params: Dict[str, Any]) -> Dict[str, Any]:
        await self._simulate_latency()

        return {
            "symbol": params.get("symbol", ""),
            "regime": "trending_bullish",
            "volatility": "medium",
            "trendStrength": 0.7,
            "timestamp": _now_iso(),
        }

    def _price_bars(self, symbol: str) -> List[Dict[str, Any]]:
        base = base_price(symbol)
        return [
            {"timeframe": "15m", "open": base, "high": base + 0.8, "low": base - 0.4, "close": base + 0.5, "volume": 25_000},
            {"timeframe": "1h", "open": base, "high": base + 2, "low": base - 1, "close": base + 1, "volume": 100_000},
            {"timeframe": "4h", "open": base - 1, "high": base + 3, "low": base - 2, "close": base + 2, "volume": 500_000},
            {"timeframe": "1d", "open": base - 2, "high": base + 5, "low": base - 3, "close": base + 3, "volume": 2_000_000},
            {"timeframe": "1w", "open": base - 6, "high": base + 7, "low": base - 8, "close": base + 3, "volume": 9_500_000},
        ]

    def _news(self, symbol: str) -> List[Dict[str, Any]]:
        now = datetime.now(timezone.utc)
        return [
            {
                "headline": f"{symbol} Shows Strong Quarterly Results",
                "source": "Financial News",
                "sentiment": 0.7,
                "publishedAt": (now - timedelta(hours=2)).isoformat(),
            },
            {
                "headline": f"Market Analyst Bullish on {symbol} Future Prospects",
                "source": "Market Watch",
                "sentiment": 0.6,
                "publishedAt": (now - timedelta(hours=5)).isoformat(),
            },
        ]

    @staticmethod
    def _sentiment(symbol: str) -> float:
        # Seeded so the same symbol always yields the same score
        return round(random.Random(symbol.upper()).uniform(0.4, 0.8), 3)

    @staticmethod
    def _levels(base: float) -> tuple[List[float], List[float]]:
        support = [round(base + offset, 2) for offset in SUPPORT_OFFSETS]
        resistance = [round(base + offset, 2) for offset in RESISTANCE_OFFSETS]
        return support, resistance


def build_market_tools(service: Optional[MockMarketDataService] = None) -> List[ToolSpec]:
    """
    Build the six market tool specs backed by ``service``.

    Args:
        service: Data service to delegate to (a zero-latency mock if None)

    Returns:
        Tool specs in planning order
    """
    service = service or MockMarketDataService()

    return [
        ToolSpec(
            name="getMarketData",
            description="Fetch OHLCV market data for specific symbol and timeframes",
            parameter_schema={
                "type": "object",
                "properties": {
                    "symbol": {"type": "string"},
                    "timeframes": {"type": "array", "items": {"type": "string"}},
                    "limit": {"type": "integer"},
                },
                "required": ["symbol"],
            },
            execute=service.get_market_data,
            result_model=MarketDataResult,
        ),
        ToolSpec(
            name="getNewsSentiment",
            description="Get recent news and sentiment analysis for symbol",
            parameter_schema={
                "type": "object",
                "properties": {
                    "symbol": {"type": "string"},
                    "lookbackHours": {"type": "integer"},
                    "sentimentThreshold": {"type": "number"},
                },
                "required": ["symbol"],
            },
            execute=service.get_news_sentiment,
            result_model=NewsSentimentResult,
        ),
        ToolSpec(
            name="analyzeTechnicalPatterns",
            description="Identify technical patterns and key levels",
            parameter_schema={
                "type": "object",
                "properties": {
                    "symbol": {"type": "string"},
                    "primaryTimeframe": {"type": "string"},
                },
                "required": ["symbol"],
            },
            execute=service.analyze_technical_patterns,
            result_model=TechnicalAnalysisResult,
        ),
        ToolSpec(
            name="detectSupportResistance",
            description="Identify key support and resistance levels",
            parameter_schema={
                "type": "object",
                "properties": {
                    "symbol": {"type": "string"},
                    "sensitivity": {"type": "number"},
                },
                "required": ["symbol"],
            },
            execute=service.detect_support_resistance,
            result_model=SupportResistanceResult,
        ),
        ToolSpec(
            name="compareTimeframes",
            description="Compare analysis across different timeframes",
            parameter_schema={
                "type": "object",
                "properties": {
                    "symbol": {"type": "string"},
                    "timeframes": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["symbol"],
            },
            execute=service.compare_timeframes,
            result_model=TimeframeAlignmentResult,
        ),
        ToolSpec(
            name="assessMarketRegime",
            description="Determine current market regime",
            parameter_schema={
                "type": "object",
                "properties": {
                    "symbol": {"type": "string"},
                    "primaryTimeframe": {"type": "string"},
                },
                "required": ["symbol"],
            },
            execute=service.assess_market_regime,
            result_model=MarketRegimeResult,
        ),
    ]


def build_default_registry(service: Optional[MockMarketDataService] = None) -> ToolRegistry:
    """Registry holding every mock market tool."""
    return ToolRegistry(build_market_tools(service))
