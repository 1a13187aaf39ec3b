"""Analysis orchestration.

- AnalysisOrchestrator: plan -> execute (with plan adjustment) -> synthesize
- Plan proposers and synthesizers it delegates to
- StepQueue: FIFO work queue that accepts appends while draining
"""

from market_agent.orchestration.orchestrator import AnalysisOrchestrator
from market_agent.orchestration.planner import (
    HeuristicPlanProposer,
    LLMPlanProposer,
    PlanProposer,
)
from market_agent.orchestration.schemas import (
    AnalysisPlan,
    AnalysisStep,
    PredictionData,
    PredictionRequest,
    PredictionResponse,
    RunMetadata,
    RunPreferences,
    StepKind,
)
from market_agent.orchestration.step_queue import StepQueue
from market_agent.orchestration.synthesizer import RuleBasedSynthesizer, Synthesizer

__all__ = [
    "AnalysisOrchestrator",
    "HeuristicPlanProposer",
    "LLMPlanProposer",
    "PlanProposer",
    "AnalysisPlan",
    "AnalysisStep",
    "PredictionData",
    "PredictionRequest",
    "PredictionResponse",
    "RunMetadata",
    "RunPreferences",
    "StepKind",
    "StepQueue",
    "RuleBasedSynthesizer",
    "Synthesizer",
]
