"""Error taxonomy for analysis runs.

Step-level kinds (TOOL_RESOLUTION, TOOL_EXECUTION) are absorbed into a
fallback fact and the run continues. Run-level kinds (PLAN_FORMULATION,
SYNTHESIS, TIMEOUT, INTERNAL) end the run with the fallback prediction.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Closed set of failure categories an analysis run can encounter."""

    TOOL_RESOLUTION = "tool_resolution"
    TOOL_EXECUTION = "tool_execution"
    PLAN_FORMULATION = "plan_formulation"
    SYNTHESIS = "synthesis"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class AnalysisError(Exception):
    """Base error carrying an ErrorKind and a structured message."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, tool: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.tool = tool


class ToolResolutionError(AnalysisError):
    """The named tool is not present in the registry."""

    kind = ErrorKind.TOOL_RESOLUTION


class ToolExecutionError(AnalysisError):
    """The tool raised, timed out or returned an unusable result."""

    kind = ErrorKind.TOOL_EXECUTION


class PlanFormulationError(AnalysisError):
    """The plan proposer failed or produced a malformed plan."""

    kind = ErrorKind.PLAN_FORMULATION


class SynthesisError(AnalysisError):
    """The synthesizer failed to fold the context into a prediction."""

    kind = ErrorKind.SYNTHESIS


class RunTimeoutError(AnalysisError):
    """The run exceeded its timeout or was cancelled between steps."""

    kind = ErrorKind.TIMEOUT


def classify(exc: BaseException) -> ErrorKind:
    """Map any exception onto the closed ErrorKind set."""
    if isinstance(exc, AnalysisError):
        return exc.kind
    return ErrorKind.INTERNAL
