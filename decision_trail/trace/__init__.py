"""Decision trail capture for multi-stage pipelines.

Records, for every stage of a pipeline, what went in, what came out, why,
and how each evaluated candidate fared.

Usage:
    from decision_trail.trace import ExecutionRecorder
    from decision_trail.storage import InMemoryStorage

    recorder = ExecutionRecorder.create("content-moderation", InMemoryStorage())
    recorder.step("toxicity_check").input({"post_id": "p1"}).reason("Score 0.02 < 0.8").record()
    await recorder.complete("success")
"""

from decision_trail.trace.errors import (
    ExecutionCompletedError,
    MalformedDocumentError,
    ReadOnlyRecorderError,
    StepAlreadyRecordedError,
    StorageError,
    TraceError,
)
from decision_trail.trace.models import (
    TERMINAL_STATUSES,
    Candidate,
    CandidateVerdict,
    Execution,
    ExecutionResult,
    ExecutionStatus,
    FilterVerdict,
    RuleEvaluation,
    Step,
)
from decision_trail.trace.recorder import ExecutionRecorder, StepRecorder

__all__ = [
    # Models
    "Candidate",
    "CandidateVerdict",
    "Execution",
    "ExecutionResult",
    "ExecutionStatus",
    "FilterVerdict",
    "RuleEvaluation",
    "Step",
    "TERMINAL_STATUSES",
    # Recorders
    "ExecutionRecorder",
    "StepRecorder",
    # Errors
    "TraceError",
    "ExecutionCompletedError",
    "StepAlreadyRecordedError",
    "ReadOnlyRecorderError",
    "StorageError",
    "MalformedDocumentError",
]
