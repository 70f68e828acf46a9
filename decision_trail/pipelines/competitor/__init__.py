"""Competitor detection - find the best competing product for a reference item.

Usage:
    from decision_trail.pipelines.competitor import run_competitor_detection

    outcome = await run_competitor_detection(reference, catalog, storage)
    print(outcome.status, outcome.execution_id)
"""

from decision_trail.pipelines.competitor.errors import (
    CompetitorDetectionError,
    ReferenceValidationError,
)
from decision_trail.pipelines.competitor.models import (
    DetectionOutcome,
    FilterOutcome,
    KeywordSet,
    RankedCandidate,
    RelevanceDecision,
    RelevanceOutcome,
    ScoreBreakdown,
    SearchResult,
    SelectionCriteria,
    SelectionOutcome,
)
from decision_trail.pipelines.competitor.orchestrator import (
    NO_COMPETITORS_REASON,
    PIPELINE_NAME,
    run_competitor_detection,
)

__all__ = [
    "run_competitor_detection",
    "PIPELINE_NAME",
    "NO_COMPETITORS_REASON",
    # Errors
    "CompetitorDetectionError",
    "ReferenceValidationError",
    # Models
    "DetectionOutcome",
    "FilterOutcome",
    "KeywordSet",
    "RankedCandidate",
    "RelevanceDecision",
    "RelevanceOutcome",
    "ScoreBreakdown",
    "SearchResult",
    "SelectionCriteria",
    "SelectionOutcome",
]
