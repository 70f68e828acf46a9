"""API schemas package."""

from .requests import CompetitorDetectionRequest, ReferenceProductIn
from .responses import (
    CompetitorDetectionResponse,
    DetectionSelection,
    ExecutionListItem,
    ExecutionListResponse,
    ExecutionSummaryResponse,
    FailuresResponse,
    SaveExecutionResponse,
)

__all__ = [
    # Requests
    "CompetitorDetectionRequest",
    "ReferenceProductIn",
    # Responses
    "CompetitorDetectionResponse",
    "DetectionSelection",
    "ExecutionListItem",
    "ExecutionListResponse",
    "ExecutionSummaryResponse",
    "FailuresResponse",
    "SaveExecutionResponse",
]
