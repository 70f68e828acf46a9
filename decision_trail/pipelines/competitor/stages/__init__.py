"""Competitor detection stages - each stage is a pure function.

Stages never touch the recorder or storage; the orchestrator wires their
outputs into steps.
"""

from decision_trail.pipelines.competitor.stages.keywords import (
    STOP_WORDS,
    generate_keywords,
    tokenize_title,
)
from decision_trail.pipelines.competitor.stages.search import search_candidates
from decision_trail.pipelines.competitor.stages.filters import apply_filters
from decision_trail.pipelines.competitor.stages.relevance import (
    ACCESSORY_KEYWORDS,
    classify_relevance,
    is_accessory,
)
from decision_trail.pipelines.competitor.stages.ranking import (
    compute_score,
    rank_and_select,
    rank_candidates,
    select_winner,
)

__all__ = [
    # Stage 1
    "STOP_WORDS",
    "generate_keywords",
    "tokenize_title",
    # Stage 2
    "search_candidates",
    # Stage 3
    "apply_filters",
    # Stage 4
    "ACCESSORY_KEYWORDS",
    "classify_relevance",
    "is_accessory",
    # Stage 5
    "compute_score",
    "rank_and_select",
    "rank_candidates",
    "select_winner",
]
