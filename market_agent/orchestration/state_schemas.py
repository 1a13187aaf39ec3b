"""State schemas for the analysis orchestrator graph using LangGraph."""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TypedDict

from market_agent.memory.working_memory import WorkingMemory
from market_agent.orchestration.schemas import (
    AnalysisPlan,
    PredictionData,
    RunPreferences,
)
from market_agent.orchestration.step_queue import StepQueue


class RunPhase(str, Enum):
    """Orchestrator state machine phases for one run."""

    PLANNING = "planning"
    EXECUTING = "executing"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAULTED = "faulted"
    FALLBACK_DONE = "fallback_done"


@dataclass
class RunState:
    """
    Mutable bookkeeping owned by exactly one run.

    Fields:
        run_id: Correlation id bound into every log line of the run
        subject: Instrument being analysed
        memory: The run's private working memory
        queue: Work queue, created once the plan is known
        tools_used: Tool names in first-use order, without duplicates
        data_sources: Data source labels of stored results, without duplicates
        reasoning_steps: Executed steps, appended recovery steps included
        started_at: Monotonic start time
        deadline: Monotonic deadline, None when the run has no timeout
        cancel_event: Cooperative cancellation token checked between steps
        phase: Current state machine phase
    """

    run_id: str
    subject: str
    memory: WorkingMemory
    queue: StepQueue = field(default_factory=StepQueue)
    tools_used: list[str] = field(default_factory=list)
    data_sources: list[str] = field(default_factory=list)
    reasoning_steps: int = 0
    started_at: float = field(default_factory=time.monotonic)
    deadline: Optional[float] = None
    cancel_event: Optional[asyncio.Event] = None
    phase: RunPhase = RunPhase.PLANNING

    def record_tool(self, tool: str) -> None:
        if tool not in self.tools_used:
            self.tools_used.append(tool)

    def record_data_source(self, label: str) -> None:
        if label not in self.data_sources:
            self.data_sources.append(label)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


class OrchestratorState(TypedDict, total=False):
    """
    Graph state passed between orchestrator nodes.

    Fields:
        run: Per-run bookkeeping (memory, queue, counters)
        preferences: Validated caller preferences
        plan: Plan returned by the proposer
        prediction: Synthesized prediction
        next_action: Routing decision after a step (execute or synthesize)
    """

    run: RunState
    preferences: RunPreferences
    plan: AnalysisPlan
    prediction: PredictionData
    next_action: str
