"""Working memory for analysis runs.

- WorkingMemory: confidence-tracked fact/evidence/hypothesis store
- Schemas: Fact, Evidence, Hypothesis, AnalysisContext, ConfidenceMetrics
"""

from market_agent.memory.schemas import (
    AnalysisContext,
    AnalysisHistoryEntry,
    AnalysisSummary,
    ConfidenceMetrics,
    Evidence,
    Fact,
    Hypothesis,
    HypothesisStatus,
)
from market_agent.memory.working_memory import WorkingMemory

__all__ = [
    "WorkingMemory",
    "AnalysisContext",
    "AnalysisHistoryEntry",
    "AnalysisSummary",
    "ConfidenceMetrics",
    "Evidence",
    "Fact",
    "Hypothesis",
    "HypothesisStatus",
]
