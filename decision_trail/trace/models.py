"""Trace data model: executions, steps and verdicts.

Every entity serializes to the camelCase document shape used by the storage
adapters (``pipelineName``, ``candidateResults``, ...) while exposing
snake_case attributes in Python. Both spellings are accepted on input.

Entity Tree:
    Execution
      └── Step (ordered, append-only)
            ├── CandidateVerdict (per evaluated item)
            │     └── RuleEvaluation (per rule name)
            └── FilterVerdict (per named rule)
"""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from decision_trail.trace.errors import ExecutionCompletedError


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """Generate a unique, roughly time-ordered identifier."""
    epoch_ms = int(utc_now().timestamp() * 1000)
    return f"{prefix}_{epoch_ms}_{uuid.uuid4().hex[:9]}"


def duration_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds elapsed between two datetimes."""
    return (end - start) // timedelta(milliseconds=1)


# Accepted gap between totalDuration and completedAt - startedAt in stored documents
DURATION_TOLERANCE_MS = 1


# =============================================================================
# Enums
# =============================================================================

class ExecutionStatus(str, Enum):
    """Lifecycle status of an execution."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.SUCCESS, ExecutionStatus.FAILURE, ExecutionStatus.CANCELLED}
)


# =============================================================================
# Verdicts
# =============================================================================

class TraceModel(BaseModel):
    """Base model with camelCase document aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Candidate(TraceModel):
    """Any evaluated entity: a product, a lead, a piece of content.

    Only ``id`` is required; every other attribute is kept as-is.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    id: str = Field(description="Stable identifier of the candidate")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value


class RuleEvaluation(TraceModel):
    """Outcome of one sub-criterion for one candidate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    passed: bool
    value: Any = None
    threshold: Any = None
    detail: str = ""


class CandidateVerdict(TraceModel):
    """Evaluation of a single candidate within a step."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    candidate: Candidate
    passed: bool
    score: Optional[float] = None
    rank: Optional[int] = Field(None, ge=1)
    evaluations: dict[str, RuleEvaluation] = Field(default_factory=dict)
    failure_reasons: list[str] = Field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _reasons_match_outcome(self) -> "CandidateVerdict":
        if self.passed and self.failure_reasons:
            raise ValueError("failure_reasons must be empty for a passing candidate")
        if not self.passed and not self.failure_reasons:
            raise ValueError("failure_reasons are required for a failing candidate")
        return self


class FilterVerdict(TraceModel):
    """A named rule's outcome, independent of any specific candidate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    passed: bool
    detail: str = ""
    applied: bool = True
    metadata: Optional[dict[str, Any]] = None


# =============================================================================
# Step
# =============================================================================

class Step(TraceModel):
    """One stage's record. Frozen once constructed."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: generate_id("step"))
    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    output: dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""
    timestamp: datetime = Field(default_factory=utc_now)
    duration: Optional[int] = Field(None, ge=0, description="Milliseconds")

    candidate_results: Optional[list[CandidateVerdict]] = None
    filter_results: Optional[list[FilterVerdict]] = None
    metadata: Optional[dict[str, Any]] = None


# =============================================================================
# Execution
# =============================================================================

class ExecutionResult(TraceModel):
    """Final decision of a pipeline run."""

    selected: Union[Candidate, list[Candidate], None] = None
    reason: Optional[str] = None
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class Execution(TraceModel):
    """One full recorded run of a staged pipeline.

    The structural guards below are the only sanctioned way to mutate an
    execution; each rejects writes once the execution is terminal.
    """

    id: str = Field(default_factory=lambda: generate_id("exec"))
    pipeline_name: str
    steps: list[Step] = Field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    total_duration: Optional[int] = Field(None, ge=0, description="Milliseconds")
    result: Optional[ExecutionResult] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("started_at", "completed_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Naive timestamps from external documents are taken as UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_lifecycle(self) -> "Execution":
        completion_set = self.completed_at is not None and self.total_duration is not None
        completion_unset = self.completed_at is None and self.total_duration is None

        if self.is_terminal and not completion_set:
            raise ValueError(f"{self.status.value} execution requires completedAt and totalDuration")
        if not self.is_terminal and not completion_unset:
            raise ValueError("pending execution cannot carry completedAt or totalDuration")

        if self.completed_at is not None:
            if self.completed_at < self.started_at:
                raise ValueError("completedAt precedes startedAt")
            drift = abs(self.total_duration - duration_ms(self.started_at, self.completed_at))
            if drift > DURATION_TOLERANCE_MS:
                raise ValueError("totalDuration does not match completedAt - startedAt")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise ExecutionCompletedError(self.id)

    def append_step(self, step: Step) -> None:
        self._ensure_open()
        self.steps.append(step)

    def assign_result(self, result: ExecutionResult) -> None:
        self._ensure_open()
        self.result = result

    def merge_metadata(self, data: dict[str, Any]) -> None:
        # Shallow merge: new keys win, existing keys are kept
        self.metadata = {**self.metadata, **data}

    def mark_complete(
        self,
        status: Union[ExecutionStatus, str],
        completed_at: Optional[datetime] = None,
    ) -> None:
        """Move to a terminal status and stamp completion time.

        Raises:
            ValueError: If ``status`` is not a terminal status.
            ExecutionCompletedError: If the execution is already terminal.
        """
        status = ExecutionStatus(status)
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"complete() requires a terminal status, got {status.value!r}")
        self._ensure_open()

        completed_at = completed_at or utc_now()
        if completed_at < self.started_at:
            completed_at = self.started_at

        self.completed_at = completed_at
        self.total_duration = duration_ms(self.started_at, completed_at)
        self.status = status

    def to_document(self) -> dict[str, Any]:
        """Serialize to the JSON-safe camelCase storage document."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Execution":
        return cls.model_validate(document)
