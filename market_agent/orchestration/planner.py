"""Plan proposers: turn a subject and preferences into an AnalysisPlan.

Two proposers are provided:
- HeuristicPlanProposer: static, strategy-aware plans built from the
  registered tools only
- LLMPlanProposer: asks a language model for a JSON plan and validates it,
  optionally falling back to another proposer when the model fails

Usage:
    proposer = HeuristicPlanProposer()
    plan = await proposer.propose("AAPL", RunPreferences(), ["getMarketData"])
"""

import asyncio
import json
import re
from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from loguru import logger
from pydantic import ValidationError

from market_agent.errors import PlanFormulationError
from market_agent.orchestration.schemas import (
    AnalysisPlan,
    AnalysisStep,
    RunPreferences,
    StepKind,
)


@runtime_checkable
class PlanProposer(Protocol):
    """Produces the ordered step list for a run."""

    async def propose(
        self,
        subject: str,
        preferences: RunPreferences,
        available_tools: Sequence[str],
    ) -> AnalysisPlan:
        ...


# Sentiment lookback widens as risk tolerance drops
LOOKBACK_HOURS = {"low": 72, "medium": 48, "high": 24}

STRATEGY_RATIONALES = {
    "comprehensive": "Comprehensive multi-timeframe analysis with sentiment integration",
    "technical": "Price structure and key level analysis without sentiment inputs",
    "sentiment": "News-driven analysis anchored on recent price data",
    "momentum": "Short-horizon momentum and regime analysis across timeframes",
}


class HeuristicPlanProposer:
    """
    Deterministic plan proposer keyed on the requested strategy.

    Steps whose tool is not registered are dropped, so the proposed plan
    only ever references available tools. May return an empty plan when
    none of the strategy's tools are registered.
    """

    def __init__(self):
        self.logger = logger.bind(component="HeuristicPlanProposer")

    async def propose(
        self,
        subject: str,
        preferences: RunPreferences,
        available_tools: Sequence[str],
    ) -> AnalysisPlan:
        """
        Build the plan for ``preferences.strategy``.

        Args:
            subject: Instrument symbol
            preferences: Validated run preferences
            available_tools: Names of registered tools

        Returns:
            AnalysisPlan restricted to available tools
        """
        candidates = self._strategy_steps(subject, preferences)
        available = set(available_tools)
        steps = [step for step in candidates if step.tool in available]

        dropped = [step.tool for step in candidates if step.tool not in available]
        if dropped:
            self.logger.warning("Dropping steps for unregistered tools", tools=dropped)

        self.logger.info(
            "Heuristic plan built",
            subject=subject,
            strategy=preferences.strategy,
            steps=len(steps),
        )
        return AnalysisPlan(
            rationale=STRATEGY_RATIONALES[preferences.strategy],
            steps=steps,
        )

    def _strategy_steps(self, subject: str, preferences: RunPreferences) -> list[AnalysisStep]:
        lookback = LOOKBACK_HOURS[preferences.risk_tolerance]
        strategy = preferences.strategy

        if strategy == "technical":
            return [
                self._market_data(subject, ["1h", "4h", "1d", "1w"]),
                self._technical(subject, "1d"),
                AnalysisStep(
                    kind=StepKind.TECHNICAL_ANALYSIS,
                    tool="detectSupportResistance",
                    parameters={"symbol": subject, "sensitivity": 0.5},
                    expected_insight="Confirmed support and resistance levels",
                ),
            ]
        if strategy == "sentiment":
            return [
                self._market_data(subject, ["4h", "1d"]),
                self._sentiment(subject, lookback * 2),
            ]
        if strategy == "momentum":
            return [
                self._market_data(subject, ["15m", "1h", "4h"]),
                AnalysisStep(
                    kind=StepKind.TECHNICAL_ANALYSIS,
                    tool="assessMarketRegime",
                    parameters={"symbol": subject, "primaryTimeframe": "4h"},
                    expected_insight="Current regime and trend strength",
                ),
                AnalysisStep(
                    kind=StepKind.SYNTHESIS,
                    tool="compareTimeframes",
                    parameters={"symbol": subject, "timeframes": ["15m", "1h", "4h"]},
                    expected_insight="Alignment of short-term timeframes",
                ),
            ]
        return [
            self._market_data(subject, ["1h", "4h", "1d", "1w"]),
            self._technical(subject, "1d"),
            self._sentiment(subject, lookback),
        ]

    @staticmethod
    def _market_data(subject: str, timeframes: list[str]) -> AnalysisStep:
        return AnalysisStep(
            kind=StepKind.DATA_COLLECTION,
            tool="getMarketData",
            parameters={"symbol": subject, "timeframes": timeframes},
            expected_insight="Price action across multiple timeframes",
        )

    @staticmethod
    def _technical(subject: str, timeframe: str) -> AnalysisStep:
        return AnalysisStep(
            kind=StepKind.TECHNICAL_ANALYSIS,
            tool="analyzeTechnicalPatterns",
            parameters={"symbol": subject, "primaryTimeframe": timeframe},
            expected_insight="Technical patterns and key levels",
        )

    @staticmethod
    def _sentiment(subject: str, lookback_hours: int) -> AnalysisStep:
        return AnalysisStep(
            kind=StepKind.SENTIMENT_ANALYSIS,
            tool="getNewsSentiment",
            parameters={"symbol": subject, "lookbackHours": lookback_hours},
            expected_insight="Market sentiment and catalysts",
        )


PLAN_PROMPT = """You are planning a market analysis for {subject}.

Objective: predict the macro trend (next 1-4 weeks), the micro trend (next 1-3 days),
key support/resistance levels and risk factors.

Available tools:
{tools}

User preferences: {preferences}

Respond with ONLY a JSON object, no other text:
{{
  "rationale": "Why this plan was chosen",
  "steps": [
    {{
      "type": "data_collection|technical_analysis|sentiment_analysis|synthesis",
      "tool": "tool_name",
      "parameters": {{}},
      "expectedInsight": "What we hope to learn"
    }}
  ]
}}"""

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class LLMPlanProposer:
    """
    Plan proposer backed by a text-generation client.

    The client only needs a synchronous ``generate_content(prompt) -> str``
    (GeminiClient satisfies it); calls run in a worker thread.

    Attributes:
        client: Text-generation client, lazily created GeminiClient if None
        fallback: Optional proposer used when the model call or parsing fails
    """

    def __init__(self, client: Any = None, fallback: Optional[PlanProposer] = None):
        self._client = client
        self.fallback = fallback
        self.logger = logger.bind(component="LLMPlanProposer")

    def _get_client(self) -> Any:
        if self._client is None:
            from market_agent.llm.gemini_client import GeminiClient

            self._client = GeminiClient()
        return self._client

    async def propose(
        self,
        subject: str,
        preferences: RunPreferences,
        available_tools: Sequence[str],
    ) -> AnalysisPlan:
        """
        Ask the model for a plan and validate it.

        Raises:
            PlanFormulationError: When the model fails or returns a
                malformed or empty plan and no fallback is configured
        """
        try:
            prompt = self.build_prompt(subject, preferences, available_tools)
            response_text = await asyncio.to_thread(self._get_client().generate_content, prompt)
            plan = self.parse_plan(response_text)
            self.logger.info(f"LLM proposed {len(plan.steps)} steps for {subject}")
            return plan
        except Exception as e:
            if self.fallback is None:
                if isinstance(e, PlanFormulationError):
                    raise
                raise PlanFormulationError(f"Plan generation failed: {e}") from e

            self.logger.warning(f"LLM planning failed, using fallback proposer: {e}")
            return await self.fallback.propose(subject, preferences, available_tools)

    @staticmethod
    def build_prompt(
        subject: str,
        preferences: RunPreferences,
        available_tools: Sequence[str],
    ) -> str:
        return PLAN_PROMPT.format(
            subject=subject,
            tools="\n".join(f"- {name}" for name in available_tools) or "- (none)",
            preferences=preferences.model_dump_json(by_alias=True),
        )

    @staticmethod
    def parse_plan(response_text: str) -> AnalysisPlan:
        """
        Parse and validate model output into an AnalysisPlan.

        Markdown code fences around the JSON are tolerated.

        Raises:
            PlanFormulationError: On invalid JSON, schema violations or
                a plan without steps
        """
        text = (response_text or "").strip()
        fenced = _FENCE_PATTERN.match(text)
        if fenced:
            text = fenced.group(1)

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise PlanFormulationError(f"Plan is not valid JSON: {e}") from e

        try:
            plan = AnalysisPlan.model_validate(payload)
        except ValidationError as e:
            raise PlanFormulationError(
                f"Plan failed validation with {e.error_count()} errors"
            ) from e

        if not plan.steps:
            raise PlanFormulationError("Plan contains no steps")
        return plan
