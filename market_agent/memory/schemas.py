"""Working memory schemas: facts, evidence, hypotheses and derived views.

Facts are single-slot per key. Evidence only ever corroborates a fact;
a fact loses confidence only when it is overwritten by a later store.
Hypotheses move from ACTIVE to CONFIRMED or REJECTED, never back.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HypothesisStatus(str, Enum):
    """Lifecycle status of a hypothesis under test."""

    ACTIVE = "active"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class Fact(BaseModel):
    """One stored belief produced by a tool execution."""

    key: str = Field(..., description="Storage key (a step kind for orchestrator facts)")
    value: Any = Field(default=None, description="Opaque fact payload")
    source: str = Field(..., description="Tool or component that produced the fact")
    base_confidence: float = Field(
        ..., ge=0.0, le=1.0, description="Confidence the fact was stored with"
    )
    confidence: float = Field(
        ..., ge=0.0, le=1.0, description="Current confidence including evidence boost"
    )
    timestamp: datetime = Field(default_factory=_utcnow)
    corroborating_evidence: list[Any] = Field(default_factory=list)


class Evidence(BaseModel):
    """A corroborating observation attached to an existing fact."""

    fact_key: str
    evidence: Any = None
    timestamp: datetime = Field(default_factory=_utcnow)


class Hypothesis(BaseModel):
    """A candidate conclusion under test, identified by its description."""

    description: str
    supporting_facts: list[str] = Field(default_factory=list)
    test_plan: list[Any] = Field(default_factory=list)
    status: HypothesisStatus = HypothesisStatus.ACTIVE
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class AnalysisHistoryEntry(BaseModel):
    """Audit trail record, appended in order of occurrence."""

    type: Literal["fact_stored", "hypothesis_formulated", "hypothesis_updated"]
    key: Optional[str] = None
    value: Any = None
    source: Optional[str] = None
    confidence: Optional[float] = None
    description: Optional[str] = None
    supporting_facts: Optional[list[str]] = None
    status: Optional[HypothesisStatus] = None
    timestamp: datetime = Field(default_factory=_utcnow)


class AnalysisSummary(BaseModel):
    """Counts describing the memory at snapshot time."""

    total_facts: int = 0
    total_hypotheses: int = 0
    active_hypotheses: int = 0
    total_evidence: int = 0


class AnalysisContext(BaseModel):
    """Read-only memory snapshot handed to synthesis.

    confirmed_facts only holds facts whose confidence is above 0.7, and
    recent_evidence the last 10 evidence entries in insertion order.
    """

    confirmed_facts: dict[str, Any] = Field(default_factory=dict)
    active_hypotheses: list[Hypothesis] = Field(default_factory=list)
    recent_evidence: list[Evidence] = Field(default_factory=list)
    confidence_levels: dict[str, float] = Field(default_factory=dict)
    analysis_summary: AnalysisSummary = Field(default_factory=AnalysisSummary)

    model_config = {"frozen": True}


class ConfidenceMetrics(BaseModel):
    """Aggregate confidence statistics over the current memory."""

    average_fact_confidence: float = 0.0
    high_confidence_facts: int = 0
    low_confidence_facts: int = 0
    hypothesis_confidence: list[float] = Field(default_factory=list)
