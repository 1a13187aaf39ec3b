"""FIFO work queue of analysis steps for a single run."""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional

from loguru import logger

from market_agent.orchestration.schemas import AnalysisStep


@dataclass
class QueuedStep:
    """
    A step waiting in the queue.

    Fields:
        sequence: Position in enqueue order (0-based, never reused)
        step: The analysis step to execute
        appended: True when added by plan adjustment after execution began
    """

    sequence: int
    step: AnalysisStep
    appended: bool = False


class StepQueue:
    """
    First-in first-out queue the executor pops from and plan adjustment
    pushes onto.

    Steps appended while the run is executing land behind every step
    already queued, so they run after all earlier planned steps and still
    within the same run.
    """

    def __init__(self, steps: Iterable[AnalysisStep] = ()):
        """
        Initialize the queue with the originally planned steps.

        Args:
            steps: Planned steps in execution order
        """
        self._queue: Deque[QueuedStep] = deque()
        self._sequence = 0
        self._planned = 0
        self._appended = 0
        self._popped = 0
        self.logger = logger.bind(component="StepQueue")

        for step in steps:
            self._enqueue(step, appended=False)

    def _enqueue(self, step: AnalysisStep, appended: bool) -> QueuedStep:
        queued = QueuedStep(sequence=self._sequence, step=step, appended=appended)
        self._queue.append(queued)
        self._sequence += 1
        if appended:
            self._appended += 1
        else:
            self._planned += 1
        return queued

    def append(self, step: AnalysisStep) -> QueuedStep:
        """
        Add a recovery step behind everything currently queued.

        Args:
            step: Step produced by plan adjustment

        Returns:
            The queued entry
        """
        queued = self._enqueue(step, appended=True)
        self.logger.info(
            "Step appended",
            tool=step.tool,
            sequence=queued.sequence,
            kind=step.kind.value,
            pending=len(self._queue),
        )
        return queued

    def pop(self) -> Optional[QueuedStep]:
        """Remove and return the next step, or None when exhausted."""
        if not self._queue:
            return None
        self._popped += 1
        return self._queue.popleft()

    def pending(self) -> List[AnalysisStep]:
        """Steps not yet popped, in execution order."""
        return [queued.step for queued in self._queue]

    def get_statistics(self) -> Dict[str, int]:
        return {
            "planned": self._planned,
            "appended": self._appended,
            "executed": self._popped,
            "pending": len(self._queue),
        }

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        return bool(self._queue)
