"""Intermediate data models for competitor detection.

These models define the contracts between pipeline stages.

Stage Flow:
1. Keyword Generation        → KeywordSet
2. Candidate Search          → SearchResult
3. Rule Filtering            → FilterOutcome
4. Relevance Classification  → RelevanceOutcome
5. Ranking & Selection       → SelectionOutcome
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from decision_trail.catalog.models import CatalogItem
from decision_trail.config.settings import Settings
from decision_trail.trace.models import CandidateVerdict, Execution, ExecutionStatus, FilterVerdict
from decision_trail.trace.recorder import ExecutionRecorder


@dataclass
class SelectionCriteria:
    """Thresholds for rule filtering and winner eligibility."""

    price_min_ratio: float = 0.5
    price_max_ratio: float = 2.0
    min_rating: float = 3.0
    min_reviews: int = 1
    min_reviews_for_winner: int = 2
    min_rating_for_winner: float = 3.0
    score_precision: int = 4

    @classmethod
    def from_settings(cls, settings: Settings) -> "SelectionCriteria":
        return cls(
            price_min_ratio=settings.price_min_ratio,
            price_max_ratio=settings.price_max_ratio,
            min_rating=settings.min_rating,
            min_reviews=settings.min_reviews,
            min_reviews_for_winner=settings.min_reviews_for_winner,
            min_rating_for_winner=settings.min_rating_for_winner,
            score_precision=settings.score_precision,
        )


# =============================================================================
# Stage 1: Keyword Generation
# =============================================================================

@dataclass
class KeywordSet:
    tokens: list[str]
    primary: str
    secondary: str

    @property
    def keywords(self) -> list[str]:
        return [k for k in (self.primary, self.secondary) if k]


# =============================================================================
# Stage 2: Candidate Search
# =============================================================================

@dataclass
class SearchResult:
    search_terms: list[str]
    candidates: list[CatalogItem]
    total_products: int
    matched_terms: dict[str, list[str]] = field(default_factory=dict)  # item id → terms


# =============================================================================
# Stage 3: Rule Filtering
# =============================================================================

@dataclass
class FilterOutcome:
    price_min: float
    price_max: float
    verdicts: list[CandidateVerdict]
    passed: list[CatalogItem]
    rule_verdicts: list[FilterVerdict]

    @property
    def failed_count(self) -> int:
        return len(self.verdicts) - len(self.passed)


# =============================================================================
# Stage 4: Relevance Classification
# =============================================================================

@dataclass
class RelevanceDecision:
    item: CatalogItem
    is_accessory: bool
    is_competitor: bool
    confidence: float  # Diagnostic only, never gates
    rejection_reason: Optional[str] = None


@dataclass
class RelevanceOutcome:
    decisions: list[RelevanceDecision]
    verdicts: list[CandidateVerdict]

    @property
    def confirmed(self) -> list[CatalogItem]:
        return [d.item for d in self.decisions if d.is_competitor]


# =============================================================================
# Stage 5: Ranking & Selection
# =============================================================================

@dataclass
class ScoreBreakdown:
    review_count_score: float
    rating_score: float
    price_proximity_score: float
    total_score: float


@dataclass
class RankedCandidate:
    item: CatalogItem
    breakdown: ScoreBreakdown
    rank: int
    eligible: bool

    @property
    def score(self) -> float:
        return self.breakdown.total_score


@dataclass
class SelectionOutcome:
    ranked: list[RankedCandidate]
    winner: Optional[RankedCandidate]
    used_fallback: bool
    verdicts: list[CandidateVerdict]


# =============================================================================
# Pipeline result
# =============================================================================

@dataclass
class DetectionOutcome:
    """What run_competitor_detection hands back to its caller."""

    recorder: ExecutionRecorder
    winner: Optional[RankedCandidate]
    diagnostics: dict[str, Any]

    @property
    def execution(self) -> Execution:
        return self.recorder.execution

    @property
    def execution_id(self) -> str:
        return self.recorder.id

    @property
    def status(self) -> ExecutionStatus:
        return self.recorder.execution.status
