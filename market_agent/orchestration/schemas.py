"""Shared schemas for analysis plans, run input and prediction output.

Python attributes are snake_case; serialized payloads use the camelCase
names of the public prediction API (``model_dump(by_alias=True)``).
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting and emitting camelCase aliases."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class StepKind(str, Enum):
    """Category of an analysis step; its value is also the memory key."""

    DATA_COLLECTION = "data_collection"
    TECHNICAL_ANALYSIS = "technical_analysis"
    SENTIMENT_ANALYSIS = "sentiment_analysis"
    SYNTHESIS = "synthesis"


class AnalysisStep(CamelModel):
    """One planned unit of work: run ``tool`` with ``parameters``."""

    kind: StepKind = Field(..., alias="type")
    tool: str = Field(..., min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    expected_insight: str = ""

    @property
    def is_fallback(self) -> bool:
        """True for recovery steps appended by plan adjustment."""
        return self.parameters.get("fallback") is True


class AnalysisPlan(CamelModel):
    """Ordered steps plus the rationale for choosing them."""

    rationale: str = ""
    steps: list[AnalysisStep] = Field(default_factory=list)


class TimePreference(CamelModel):
    macro: Optional[str] = None
    micro: Optional[str] = None


Strategy = Literal["comprehensive", "technical", "sentiment", "momentum"]
RiskTolerance = Literal["low", "medium", "high"]


class RunPreferences(CamelModel):
    """Caller preferences steering planning and output timeframes."""

    strategy: Strategy = "comprehensive"
    time_preference: TimePreference = Field(default_factory=TimePreference)
    risk_tolerance: RiskTolerance = "medium"


class PredictionRequest(CamelModel):
    """Validated run input as received from an outer surface."""

    subject: str = Field(..., min_length=1, max_length=10, alias="symbol")
    preferences: RunPreferences = Field(default_factory=RunPreferences)


MacroDirection = Literal["bullish", "bearish", "neutral", "consolidation"]
MicroDirection = Literal[
    "bullish",
    "bearish",
    "neutral",
    "consolidation_bullish",
    "consolidation_bearish",
]


class MacroTrend(CamelModel):
    direction: MacroDirection
    confidence: float = Field(..., ge=0.0, le=1.0)
    timeframe: str
    rationale: str


class MicroTrend(CamelModel):
    direction: MicroDirection
    confidence: float = Field(..., ge=0.0, le=1.0)
    timeframe: str
    expected_action: str


class KeyLevels(CamelModel):
    immediate_support: list[float] = Field(default_factory=list)
    immediate_resistance: list[float] = Field(default_factory=list)
    breakout_level: Optional[float] = None


class PredictionData(CamelModel):
    """Final prediction artifact produced by synthesis."""

    macro_trend: MacroTrend
    micro_trend: MicroTrend
    key_levels: KeyLevels = Field(default_factory=KeyLevels)
    risk_factors: list[str] = Field(default_factory=list)
    agent_notes: Optional[str] = None


class RunMetadata(CamelModel):
    """Per-run telemetry, computed once and never changed."""

    strategy: str
    tools_used: list[str] = Field(default_factory=list)
    data_sources_analyzed: list[str] = Field(default_factory=list)
    reasoning_steps: int = 0
    total_analysis_time: str = "0ms"
    confidence_calibration: str = "conservative"

    model_config = {"frozen": True}


class PredictionResponse(CamelModel):
    """Run output: success flag, subject, prediction and run metadata."""

    success: bool
    subject: str
    prediction: PredictionData
    run_metadata: RunMetadata

    @property
    def is_fallback(self) -> bool:
        return self.run_metadata.confidence_calibration == "fallback"
