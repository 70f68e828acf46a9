"""
Response schemas for the API.

All responses serialize with camelCase keys, matching the stored
execution documents.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from decision_trail.trace.models import Execution


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Executions
# =============================================================================

class ExecutionListItem(ApiModel):
    """One row of the execution list."""
    id: str
    pipeline_name: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_duration: Optional[int] = None
    step_count: int = 0
    result_reason: Optional[str] = None

    @classmethod
    def from_execution(cls, execution: Execution) -> "ExecutionListItem":
        return cls(
            id=execution.id,
            pipeline_name=execution.pipeline_name,
            status=execution.status.value,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            total_duration=execution.total_duration,
            step_count=len(execution.steps),
            result_reason=execution.result.reason if execution.result else None,
        )


class ExecutionListResponse(ApiModel):
    executions: list[ExecutionListItem]
    count: int


class SaveExecutionResponse(ApiModel):
    execution_id: str


class ExecutionSummaryResponse(ApiModel):
    """Candidate and rule tallies across every step of one execution."""
    execution_id: str
    total_steps: int
    total_candidates: int
    candidates_passed: int
    candidates_failed: int
    duration: int
    filter_failures: dict[str, int] = Field(default_factory=dict)


class FailuresResponse(ApiModel):
    execution_id: str
    rule: str
    count: int
    failures: list[dict[str, Any]]


# =============================================================================
# Competitor Detection
# =============================================================================

class DetectionSelection(ApiModel):
    id: str
    title: str
    reason: str
    score: float


class CompetitorDetectionResponse(ApiModel):
    execution_id: str
    status: str
    total_duration: Optional[int] = None
    selection: DetectionSelection
