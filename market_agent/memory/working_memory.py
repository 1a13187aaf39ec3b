"""Confidence-tracked working memory for a single analysis run.

Features:
- Single fact per key: storing under an existing key replaces the fact
  (and drops its corroborating evidence)
- Evidence-driven confidence boost, capped at +0.3 over the stored confidence
- Hypothesis tracking with one-way ACTIVE -> CONFIRMED/REJECTED transitions
- Ordered, append-only analysis history
- Derived AnalysisContext snapshots for synthesis

A WorkingMemory belongs to exactly one run, so it carries no locks.

Usage:
    from market_agent.memory import WorkingMemory

    memory = WorkingMemory()
    memory.store_fact("technical_analysis", result, source="analyzeTechnicalPatterns")
    memory.add_evidence("technical_analysis", {"pattern": "Support Test"})
    context = memory.get_context()
"""

import copy
from typing import Any, Optional, Sequence

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
from market_agent.utils.logging import get_structured_logger

DEFAULT_FACT_CONFIDENCE = 0.8
INITIAL_HYPOTHESIS_CONFIDENCE = 0.5

# Confidence boost per corroborating evidence item, and its ceiling
EVIDENCE_BOOST_PER_ITEM = 0.1
MAX_EVIDENCE_BOOST = 0.3

CONFIRMED_FACT_THRESHOLD = 0.7
HIGH_CONFIDENCE_THRESHOLD = 0.8
LOW_CONFIDENCE_THRESHOLD = 0.5
RECENT_EVIDENCE_WINDOW = 10


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class WorkingMemory:
    """
    Fact, evidence and hypothesis store scoped to one analysis run.

    Internal state:
    - _facts: key -> Fact (insertion ordered, single slot per key)
    - _hypotheses: ordered list, looked up by description
    - _evidence: append-only evidence log across all facts
    - _history: append-only audit trail
    """

    def __init__(self, run_id: Optional[str] = None):
        """
        Initialize an empty working memory.

        Args:
            run_id: Optional run identifier bound into log events
        """
        self._facts: dict[str, Fact] = {}
        self._hypotheses: list[Hypothesis] = []
        self._evidence: list[Evidence] = []
        self._history: list[AnalysisHistoryEntry] = []
        self._logger = get_structured_logger("WorkingMemory", run_id=run_id)

    def __len__(self) -> int:
        return len(self._facts)

    def store_fact(
        self,
        key: str,
        value: Any,
        source: str,
        confidence: float = DEFAULT_FACT_CONFIDENCE,
    ) -> None:
        """
        Insert or overwrite the fact stored under ``key``.

        The new fact starts with no corroborating evidence, even when it
        replaces an existing one.

        Args:
            key: Fact key
            value: Fact payload
            source: Producer of the fact (usually a tool name)
            confidence: Base confidence, clamped into [0, 1]
        """
        confidence = _clamp(confidence)
        replaced = key in self._facts

        self._facts[key] = Fact(
            key=key,
            value=value,
            source=source,
            base_confidence=confidence,
            confidence=confidence,
        )
        self._history.append(
            AnalysisHistoryEntry(
                type="fact_stored",
                key=key,
                value=value,
                source=source,
                confidence=confidence,
            )
        )

        self._logger.debug(
            "fact_stored",
            key=key,
            source=source,
            confidence=confidence,
            replaced=replaced,
        )

    def add_evidence(self, fact_key: str, evidence: Any) -> None:
        """
        Attach corroborating evidence to an existing fact.

        Unknown keys are ignored. The fact's confidence becomes
        ``min(base + min(count * 0.1, 0.3), 1.0)``.

        Args:
            fact_key: Key of the fact being corroborated
            evidence: Evidence payload
        """
        fact = self._facts.get(fact_key)
        if fact is None:
            self._logger.debug("evidence_ignored_unknown_fact", fact_key=fact_key)
            return

        fact.corroborating_evidence.append(evidence)
        fact.confidence = self._adjusted_confidence(fact)
        self._evidence.append(Evidence(fact_key=fact_key, evidence=evidence))

        self._logger.debug(
            "evidence_added",
            fact_key=fact_key,
            evidence_count=len(fact.corroborating_evidence),
            confidence=fact.confidence,
        )

    @staticmethod
    def _adjusted_confidence(fact: Fact) -> float:
        evidence_boost = min(
            len(fact.corroborating_evidence) * EVIDENCE_BOOST_PER_ITEM,
            MAX_EVIDENCE_BOOST,
        )
        return min(fact.base_confidence + evidence_boost, 1.0)

    def formulate_hypothesis(
        self,
        description: str,
        supporting_facts: Sequence[str],
        test_plan: Sequence[Any],
    ) -> None:
        """
        Record a new ACTIVE hypothesis with confidence 0.5.

        A description already in use is ignored and logged, so every
        hypothesis stays reachable by its description.

        Args:
            description: Hypothesis text, also its identifier
            supporting_facts: Keys of facts backing the hypothesis
            test_plan: Steps that would test it
        """
        if any(existing.description == description for existing in self._hypotheses):
            self._logger.warning("hypothesis_duplicate_ignored", description=description)
            return

        hypothesis = Hypothesis(
            description=description,
            supporting_facts=list(supporting_facts),
            test_plan=list(test_plan),
            status=HypothesisStatus.ACTIVE,
            confidence=INITIAL_HYPOTHESIS_CONFIDENCE,
        )
        self._hypotheses.append(hypothesis)
        self._history.append(
            AnalysisHistoryEntry(
                type="hypothesis_formulated",
                description=description,
                supporting_facts=list(supporting_facts),
            )
        )

        self._logger.debug(
            "hypothesis_formulated",
            description=description,
            supporting_facts=len(hypothesis.supporting_facts),
        )

    def update_hypothesis_status(
        self,
        description: str,
        status: HypothesisStatus | str,
        confidence: float,
    ) -> None:
        """
        Resolve an ACTIVE hypothesis to CONFIRMED or REJECTED.

        Unknown descriptions are ignored, as are transitions out of a
        resolved status or back to ACTIVE.

        Args:
            description: Hypothesis identifier
            status: Target status (confirmed or rejected)
            confidence: New confidence, set together with the status
        """
        status = HypothesisStatus(status)
        hypothesis = next(
            (h for h in self._hypotheses if h.description == description), None
        )
        if hypothesis is None:
            self._logger.debug("hypothesis_not_found", description=description)
            return

        if hypothesis.status != HypothesisStatus.ACTIVE or status == HypothesisStatus.ACTIVE:
            self._logger.warning(
                "hypothesis_transition_ignored",
                description=description,
                current=hypothesis.status.value,
                requested=status.value,
            )
            return

        confidence = _clamp(confidence)
        hypothesis.status = status
        hypothesis.confidence = confidence
        self._history.append(
            AnalysisHistoryEntry(
                type="hypothesis_updated",
                description=description,
                status=status,
                confidence=confidence,
            )
        )

        self._logger.debug(
            "hypothesis_updated",
            description=description,
            status=status.value,
            confidence=confidence,
        )

    def get_fact(self, key: str) -> Optional[Fact]:
        """Return a copy of the fact stored under ``key``, or None."""
        fact = self._facts.get(key)
        return fact.model_copy(deep=True) if fact is not None else None

    def get_context(self) -> AnalysisContext:
        """
        Build the snapshot consumed by synthesis.

        Returns:
            AnalysisContext with facts above the confirmation threshold,
            active hypotheses and the most recent evidence. All payloads
            are copies; mutating them does not touch the memory.
        """
        confirmed_facts = {
            key: copy.deepcopy(fact.value)
            for key, fact in self._facts.items()
            if fact.confidence > CONFIRMED_FACT_THRESHOLD
        }
        active_hypotheses = [
            h.model_copy(deep=True)
            for h in self._hypotheses
            if h.status == HypothesisStatus.ACTIVE
        ]

        return AnalysisContext(
            confirmed_facts=confirmed_facts,
            active_hypotheses=active_hypotheses,
            recent_evidence=[
                e.model_copy(deep=True)
                for e in self._evidence[-RECENT_EVIDENCE_WINDOW:]
            ],
            confidence_levels={
                key: fact.confidence for key, fact in self._facts.items()
            },
            analysis_summary=AnalysisSummary(
                total_facts=len(self._facts),
                total_hypotheses=len(self._hypotheses),
                active_hypotheses=len(active_hypotheses),
                total_evidence=len(self._evidence),
            ),
        )

    def get_analysis_history(self) -> list[AnalysisHistoryEntry]:
        """Return a copy of the full, ordered analysis history."""
        return [entry.model_copy() for entry in self._history]

    def get_confidence_metrics(self) -> ConfidenceMetrics:
        """
        Summarize fact and hypothesis confidence.

        Returns:
            ConfidenceMetrics with the average fact confidence (0 when
            empty), counts above 0.8 and below 0.5, and every hypothesis
            confidence in formulation order.
        """
        confidences = [fact.confidence for fact in self._facts.values()]
        average = sum(confidences) / len(confidences) if confidences else 0.0

        return ConfidenceMetrics(
            average_fact_confidence=average,
            high_confidence_facts=sum(1 for c in confidences if c > HIGH_CONFIDENCE_THRESHOLD),
            low_confidence_facts=sum(1 for c in confidences if c < LOW_CONFIDENCE_THRESHOLD),
            hypothesis_confidence=[h.confidence for h in self._hypotheses],
        )

    def clear(self) -> None:
        """Reset all facts, hypotheses, evidence and history."""
        self._facts.clear()
        self._hypotheses.clear()
        self._evidence.clear()
        self._history.clear()
        self._logger.debug("memory_cleared")
