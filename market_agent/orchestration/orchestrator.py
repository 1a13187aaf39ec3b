"""Analysis orchestrator: plan, execute, adjust and synthesize a market prediction."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Optional

from langgraph.graph import StateGraph, END
from pydantic import ValidationError

from market_agent.agents.base_agent import BaseAgent
from market_agent.config.settings import Settings, settings as default_settings
from market_agent.errors import (
    AnalysisError,
    PlanFormulationError,
    RunTimeoutError,
    SynthesisError,
    ToolExecutionError,
    ToolResolutionError,
    classify,
)
from market_agent.memory.schemas import AnalysisHistoryEntry, ConfidenceMetrics
from market_agent.memory.working_memory import WorkingMemory
from market_agent.orchestration.planner import HeuristicPlanProposer, PlanProposer
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
from market_agent.orchestration.state_schemas import OrchestratorState, RunPhase, RunState
from market_agent.orchestration.step_queue import StepQueue
from market_agent.orchestration.synthesizer import (
    RuleBasedSynthesizer,
    Synthesizer,
    fallback_prediction,
    run_synthesizer,
)
from market_agent.tools.registry import ToolRegistry, ToolSpec
from market_agent.tools.results import (
    DATA_SOURCE_LABELS,
    GenericToolResult,
    ToolFailure,
    ToolResult,
    data_points,
)
from market_agent.utils.logging import get_correlation_id

STRATEGY_LABELS = {
    "comprehensive": "multi_timeframe_technical_sentiment",
    "technical": "technical_focused",
    "sentiment": "sentiment_focused",
    "momentum": "momentum_focused",
}

# Average fact confidence at or above which calibration is reported as standard
STANDARD_CALIBRATION_THRESHOLD = 0.85


class AnalysisOrchestrator(BaseAgent):
    """
    Agentic orchestrator producing market predictions.

    Asks a plan proposer for an ordered list of tool steps, executes them
    one at a time against the tool registry, stores every result in a
    per-run WorkingMemory, appends recovery steps when a step fails or
    comes back empty, and finally asks a synthesizer for the prediction.

    Uses a LangGraph StateGraph for the state machine:
    formulate_plan -> execute_step (loops while steps remain) -> synthesize.

    Memory is single-slot per step kind: a later step of the same kind
    replaces the fact stored by an earlier one.

    Attributes:
        tools: Immutable registry shared by all runs
        plan_proposer: Produces the plan for each run
        synthesizer: Folds the memory context into a prediction
        settings: Runtime settings (timeouts, confidences, fallback tool)
        graph: Compiled LangGraph StateGraph
    """

    def __init__(
        self,
        tools: ToolRegistry,
        plan_proposer: Optional[PlanProposer] = None,
        synthesizer: Optional[Synthesizer] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            tools: ToolRegistry the plan's steps resolve against
            plan_proposer: Plan proposer (HeuristicPlanProposer if None)
            synthesizer: Synthesizer (RuleBasedSynthesizer if None)
            settings: Settings override (global settings if None)
        """
        super().__init__(
            name="AnalysisOrchestrator",
            description="Plans, executes and synthesizes market analyses",
        )

        self.tools = tools
        self.settings = settings or default_settings
        self.plan_proposer = plan_proposer or HeuristicPlanProposer()
        self.synthesizer = synthesizer or RuleBasedSynthesizer(
            macro_timeframe=self.settings.default_macro_timeframe,
            micro_timeframe=self.settings.default_micro_timeframe,
        )

        # Most recently started run, for introspection
        self._current_run: Optional[RunState] = None

        self.graph = self._build_graph()

        self.logger.info(
            "AnalysisOrchestrator initialized",
            tools=len(tools),
            proposer=type(self.plan_proposer).__name__,
            synthesizer=type(self.synthesizer).__name__,
        )

    def _build_graph(self) -> Any:
        """
        Build the LangGraph StateGraph for a run.

        Returns:
            Compiled graph (no checkpointing; run state is never persisted)
        """
        graph = StateGraph(OrchestratorState)

        graph.add_node("formulate_plan", self.formulate_plan)
        graph.add_node("execute_step", self.execute_step)
        graph.add_node("synthesize", self.synthesize)

        graph.set_entry_point("formulate_plan")

        routes = {"execute": "execute_step", "synthesize": "synthesize"}
        graph.add_conditional_edges(
            "formulate_plan",
            lambda state: state.get("next_action", "synthesize"),
            routes,
        )
        graph.add_conditional_edges(
            "execute_step",
            lambda state: state.get("next_action", "synthesize"),
            routes,
        )

        graph.add_edge("synthesize", END)

        return graph.compile()

    def _recursion_limit(self) -> int:
        # Each planned step may append at most one recovery step
        return 2 * self.settings.max_plan_steps + 5

    async def run(
        self,
        subject: str,
        preferences: RunPreferences | dict | None = None,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PredictionResponse:
        """
        Produce a prediction for ``subject``. Never raises.

        Args:
            subject: Instrument symbol
            preferences: RunPreferences or an equivalent (camelCase) dict
            timeout: Seconds allowed for the run, checked between steps
                (settings.run_timeout_seconds if None)
            cancel_event: Event that cancels the run when set, checked
                between steps

        Returns:
            PredictionResponse; on any run-level fault, the neutral
            fallback prediction with confidence calibration "fallback"
        """
        run_id = get_correlation_id()
        run = RunState(
            run_id=run_id,
            subject=subject,
            memory=WorkingMemory(run_id=run_id),
            cancel_event=cancel_event,
        )
        timeout = timeout if timeout is not None else self.settings.run_timeout_seconds
        if timeout is not None:
            run.deadline = run.started_at + timeout
        self._current_run = run

        log = self.logger.bind(run_id=run_id, subject=subject)
        strategy = "comprehensive"

        try:
            prefs = self._coerce_preferences(preferences)
            strategy = prefs.strategy
            log.info("Starting analysis run", strategy=strategy)

            final_state = await self.graph.ainvoke(
                {"run": run, "preferences": prefs},
                config={"recursion_limit": self._recursion_limit()},
            )

            metadata = self._build_metadata(run, strategy)
            prediction = self._apply_time_preferences(final_state["prediction"], prefs)
            run.phase = RunPhase.DONE

            log.info(
                "Analysis run complete",
                reasoning_steps=run.reasoning_steps,
                tools_used=run.tools_used,
                queue=run.queue.get_statistics(),
                duration=metadata.total_analysis_time,
            )
            return PredictionResponse(
                success=True,
                subject=subject,
                prediction=prediction,
                run_metadata=metadata,
            )

        except Exception as e:
            kind = classify(e)
            log.error(
                "Analysis failed, returning fallback prediction",
                error=str(e),
                error_kind=kind.value,
                phase=run.phase.value,
                reasoning_steps=run.reasoning_steps,
            )
            run.phase = RunPhase.FAULTED
            return self._fallback_response(run, subject, strategy)

    def _coerce_preferences(self, preferences: RunPreferences | dict | None) -> RunPreferences:
        if preferences is None:
            return RunPreferences()
        if isinstance(preferences, RunPreferences):
            return preferences
        if isinstance(preferences, dict):
            try:
                return RunPreferences.model_validate(preferences)
            except ValidationError as e:
                raise PlanFormulationError(f"Invalid preferences: {e.error_count()} errors") from e
        raise PlanFormulationError(f"Unsupported preferences type: {type(preferences).__name__}")

    def _check_deadline(self, run: RunState) -> None:
        if run.cancel_event is not None and run.cancel_event.is_set():
            raise RunTimeoutError("Analysis run cancelled")
        if run.deadline is not None and time.monotonic() > run.deadline:
            raise RunTimeoutError(f"Analysis run exceeded timeout after {run.elapsed_ms()}ms")

    async def formulate_plan(self, state: OrchestratorState) -> OrchestratorState:
        """
        Ask the plan proposer for the run's plan and queue its steps.

        Args:
            state: Graph state holding the run and preferences

        Returns:
            State update with the validated plan and routing decision

        Raises:
            PlanFormulationError: Proposer failed or returned a malformed plan
        """
        run = state["run"]
        run.phase = RunPhase.PLANNING
        self._check_deadline(run)

        try:
            proposed = await self.plan_proposer.propose(
                run.subject, state["preferences"], self.tools.names()
            )
        except AnalysisError:
            raise
        except Exception as e:
            raise PlanFormulationError(f"Plan proposer failed: {e}") from e

        plan = self._validate_plan(proposed)
        run.queue = StepQueue(plan.steps)
        run.phase = RunPhase.EXECUTING

        self.logger.info(
            "Analysis plan formulated",
            run_id=run.run_id,
            rationale=plan.rationale,
            steps=[step.tool for step in plan.steps],
        )
        return {"plan": plan, "next_action": "execute" if run.queue else "synthesize"}

    def _validate_plan(self, proposed: Any) -> AnalysisPlan:
        if isinstance(proposed, AnalysisPlan):
            payload = proposed.model_dump(by_alias=True)
        elif isinstance(proposed, dict):
            payload = proposed
        else:
            raise PlanFormulationError(
                f"Plan proposer returned {type(proposed).__name__}, expected AnalysisPlan"
            )

        try:
            plan = AnalysisPlan.model_validate(payload)
        except ValidationError as e:
            raise PlanFormulationError(f"Malformed plan: {e.error_count()} errors") from e

        if len(plan.steps) > self.settings.max_plan_steps:
            raise PlanFormulationError(
                f"Plan has {len(plan.steps)} steps, limit is {self.settings.max_plan_steps}"
            )
        return plan

    async def execute_step(self, state: OrchestratorState) -> OrchestratorState:
        """
        Execute the next queued step and store its result.

        Tool faults never escape: they become a ToolFailure fact. After
        storing, the plan-adjustment check may append a recovery step
        that runs later in this same run.

        Args:
            state: Graph state holding the run

        Returns:
            State update with the routing decision
        """
        run = state["run"]
        self._check_deadline(run)

        queued = run.queue.pop()
        if queued is None:
            return {"next_action": "synthesize"}

        step = queued.step
        result = await self._execute_analysis_step(step, run)

        is_failure = isinstance(result, ToolFailure)
        run.memory.store_fact(
            step.kind.value, result, step.tool, self.settings.default_fact_confidence
        )

        label = DATA_SOURCE_LABELS.get(result.kind)
        if label and not is_failure:
            run.record_data_source(label)

        if self._should_adjust_plan(result, step):
            self._adjust_plan(run, step, result)

        run.reasoning_steps += 1

        return {"next_action": "execute" if run.queue else "synthesize"}

    async def _execute_analysis_step(self, step: AnalysisStep, run: RunState) -> ToolResult:
        tool = self.tools.get(step.tool)
        if tool is None:
            return self._handle_tool_error(
                step, run, ToolResolutionError(f"Tool {step.tool} not found", tool=step.tool)
            )

        run.record_tool(step.tool)
        params = self._enhance_parameters(step.parameters, run.subject)

        try:
            raw = await asyncio.wait_for(
                tool.execute(params), timeout=self.settings.tool_timeout_seconds
            )
            result = self._normalize_result(tool, raw, run.subject)
        except asyncio.TimeoutError:
            error = ToolExecutionError(
                f"Tool {step.tool} timed out after {self.settings.tool_timeout_seconds}s",
                tool=step.tool,
            )
            return self._handle_tool_error(step, run, error)
        except AnalysisError as e:
            return self._handle_tool_error(step, run, e)
        except Exception as e:
            error = ToolExecutionError(str(e) or type(e).__name__, tool=step.tool)
            return self._handle_tool_error(step, run, error)

        self.logger.debug("Tool execution completed", run_id=run.run_id, tool=step.tool)
        return result

    def _handle_tool_error(self, step: AnalysisStep, run: RunState, error: AnalysisError) -> ToolFailure:
        self.logger.warning(
            "Tool failed, using fallback",
            tool=step.tool,
            run_id=run.run_id,
            error=error.message,
            error_kind=error.kind.value,
            step=step.kind.value,
        )
        return ToolFailure(
            symbol=run.subject,
            error=error.message,
            error_kind=error.kind,
            tool=step.tool,
        )

    @staticmethod
    def _enhance_parameters(base_params: dict[str, Any], subject: str) -> dict[str, Any]:
        return {
            **base_params,
            "symbol": subject,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def _normalize_result(tool: ToolSpec, raw: Any, subject: str) -> ToolResult:
        """
        Convert a raw tool return value into its tagged result shape.

        Raises:
            ToolExecutionError: The tool reported an error or returned a
                result that does not match its declared model
        """
        if isinstance(raw, ToolResult):
            return raw

        if isinstance(raw, dict) and raw.get("error"):
            raise ToolExecutionError(str(raw["error"]), tool=tool.name)

        if tool.result_model is not None and isinstance(raw, dict):
            try:
                return tool.result_model.model_validate(raw)
            except ValidationError as e:
                raise ToolExecutionError(
                    f"Tool {tool.name} returned a malformed result: {e.error_count()} errors",
                    tool=tool.name,
                ) from e

        insufficient = isinstance(raw, dict) and bool(raw.get("insufficientData"))
        return GenericToolResult(
            symbol=subject,
            tool=tool.name,
            payload=raw,
            insufficient_data=insufficient,
        )

    @staticmethod
    def _should_adjust_plan(result: ToolResult, step: AnalysisStep) -> bool:
        # Recovery steps never trigger further recovery
        if step.is_fallback:
            return False
        if isinstance(result, ToolFailure) or result.insufficient_data:
            return True
        return step.kind == StepKind.DATA_COLLECTION and not data_points(result)

    def _adjust_plan(self, run: RunState, step: AnalysisStep, result: ToolResult) -> None:
        reason = "error" if isinstance(result, ToolFailure) else "insufficient_data"
        self.logger.info(
            "Adjusting plan with fallback data collection",
            run_id=run.run_id,
            trigger_tool=step.tool,
            reason=reason,
        )
        run.queue.append(
            AnalysisStep(
                kind=StepKind.DATA_COLLECTION,
                tool=self.settings.fallback_data_tool,
                parameters={"fallback": True, "basic": True},
                expected_insight="Fallback data collection",
            )
        )

    async def synthesize(self, state: OrchestratorState) -> OrchestratorState:
        """
        Fold the run's memory context into the final prediction.

        Raises:
            SynthesisError: The synthesizer failed or returned an invalid prediction
        """
        run = state["run"]
        self._check_deadline(run)
        run.phase = RunPhase.SYNTHESIZING

        context = run.memory.get_context()
        try:
            prediction = await run_synthesizer(self.synthesizer, context)
            if not isinstance(prediction, PredictionData):
                prediction = PredictionData.model_validate(prediction)
        except Exception as e:
            raise SynthesisError(f"Synthesis failed: {e}") from e

        return {"prediction": prediction, "next_action": "end"}

    def _apply_time_preferences(self, prediction: PredictionData, prefs: RunPreferences) -> PredictionData:
        time_preference = prefs.time_preference
        update: dict[str, Any] = {}
        if time_preference.macro:
            update["macro_trend"] = prediction.macro_trend.model_copy(
                update={"timeframe": time_preference.macro}
            )
        if time_preference.micro:
            update["micro_trend"] = prediction.micro_trend.model_copy(
                update={"timeframe": time_preference.micro}
            )
        return prediction.model_copy(update=update) if update else prediction

    def _build_metadata(self, run: RunState, strategy: str, calibration: Optional[str] = None) -> RunMetadata:
        if calibration is None:
            average = run.memory.get_confidence_metrics().average_fact_confidence
            calibration = (
                "standard" if average >= STANDARD_CALIBRATION_THRESHOLD else "conservative"
            )

        return RunMetadata(
            strategy=STRATEGY_LABELS.get(strategy, strategy),
            tools_used=list(run.tools_used),
            data_sources_analyzed=list(run.data_sources),
            reasoning_steps=run.reasoning_steps,
            total_analysis_time=f"{run.elapsed_ms()}ms",
            confidence_calibration=calibration,
        )

    def _fallback_response(
        self,
        run: RunState,
        subject: str,
        strategy: str,
    ) -> PredictionResponse:
        prediction = fallback_prediction(
            risk_factors=["Analysis system encountered errors"],
            agent_notes="Fallback prediction due to system issues",
            macro_timeframe=self.settings.default_macro_timeframe,
            micro_timeframe=self.settings.default_micro_timeframe,
        )
        metadata = self._build_metadata(run, strategy, calibration="fallback")
        run.phase = RunPhase.FALLBACK_DONE
        return PredictionResponse(
            success=True,
            subject=str(subject),
            prediction=prediction,
            run_metadata=metadata,
        )

    async def process(self, input_data: dict) -> dict:
        """
        Run an analysis from a raw request dict.

        Args:
            input_data: {"symbol" | "subject": str, "preferences": {...}}

        Returns:
            Serialized PredictionResponse, or an error dict for invalid input
        """
        try:
            request = PredictionRequest.model_validate(input_data)
        except ValidationError as e:
            self.logger.warning(f"Invalid prediction request: {e.error_count()} errors")
            return {"status": "error", "error": str(e)}

        response = await self.run(request.subject, request.preferences)
        return response.model_dump(by_alias=True, mode="json")

    def get_capabilities(self) -> list[str]:
        return ["market_prediction", *self.tools.names()]

    # Introspection of the most recently started run

    def get_current_state(self) -> dict[str, Any]:
        run = self._current_run
        if run is None:
            return {
                "phase": None,
                "working_memory": WorkingMemory().get_context(),
                "tools_used": [],
                "reasoning_steps": 0,
                "pending_steps": [],
            }
        return {
            "phase": run.phase.value,
            "working_memory": run.memory.get_context(),
            "tools_used": list(run.tools_used),
            "reasoning_steps": run.reasoning_steps,
            "pending_steps": run.queue.pending(),
        }

    def get_reasoning_chain(self) -> list[AnalysisHistoryEntry]:
        return self._current_run.memory.get_analysis_history() if self._current_run else []

    def get_tools_used(self) -> list[str]:
        return list(self._current_run.tools_used) if self._current_run else []

    def get_analysis_duration(self) -> int:
        """Milliseconds since the most recent run started (0 before any run)."""
        return self._current_run.elapsed_ms() if self._current_run else 0

    def get_confidence_metrics(self) -> ConfidenceMetrics:
        if self._current_run is None:
            return ConfidenceMetrics()
        return self._current_run.memory.get_confidence_metrics()
