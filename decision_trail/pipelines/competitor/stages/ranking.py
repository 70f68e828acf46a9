"""Stage 5: Ranking & Selection - Weighted scoring and winner choice.

Score = 60% review volume (saturating at 10k) + 30% rating + 10% price proximity.
Ranking is a stable descending sort so equal scores keep candidate order.
The winner is the best-ranked entry that clears the business rules; when none
does, the best-ranked entry wins anyway.
"""

from typing import Optional

from decision_trail.catalog.models import CatalogItem
from decision_trail.pipelines.competitor.models import (
    RankedCandidate,
    ScoreBreakdown,
    SelectionCriteria,
    SelectionOutcome,
)
from decision_trail.trace.models import CandidateVerdict, RuleEvaluation

REVIEW_WEIGHT = 0.6
RATING_WEIGHT = 0.3
PRICE_WEIGHT = 0.1
REVIEW_BENCHMARK = 10_000
MAX_RATING = 5.0

RANKING_WEIGHTS = {
    "review_count": REVIEW_WEIGHT,
    "rating": RATING_WEIGHT,
    "price_proximity": PRICE_WEIGHT,
}


def score_breakdown(item: CatalogItem, reference_price: float, precision: int = 4) -> ScoreBreakdown:
    review_score = min(1.0, item.review_count / REVIEW_BENCHMARK)
    rating_score = item.rating / MAX_RATING
    denominator = max(item.price, reference_price)
    price_score = 1 - abs(item.price - reference_price) / denominator if denominator else 1.0

    total = review_score * REVIEW_WEIGHT + rating_score * RATING_WEIGHT + price_score * PRICE_WEIGHT
    return ScoreBreakdown(
        review_count_score=review_score,
        rating_score=rating_score,
        price_proximity_score=price_score,
        total_score=round(total, precision),
    )


def compute_score(item: CatalogItem, reference_price: float, precision: int = 4) -> float:
    return score_breakdown(item, reference_price, precision).total_score


def is_eligible(item: CatalogItem, criteria: SelectionCriteria) -> bool:
    return (
        item.review_count >= criteria.min_reviews_for_winner
        and item.rating >= criteria.min_rating_for_winner
    )


def rank_candidates(
    items: list[CatalogItem],
    reference_price: float,
    criteria: SelectionCriteria,
) -> list[RankedCandidate]:
    scored = [
        (item, score_breakdown(item, reference_price, criteria.score_precision))
        for item in items
    ]
    # sorted() is stable
    scored = sorted(scored, key=lambda pair: pair[1].total_score, reverse=True)

    return [
        RankedCandidate(
            item=item,
            breakdown=breakdown,
            rank=index + 1,
            eligible=is_eligible(item, criteria),
        )
        for index, (item, breakdown) in enumerate(scored)
    ]


def select_winner(ranked: list[RankedCandidate]) -> tuple[Optional[RankedCandidate], bool]:
    """Pick the winner from a ranked list.

    Returns:
        (winner, used_fallback). winner is None only for an empty list.
    """
    if not ranked:
        return None, False
    for entry in ranked:
        if entry.eligible:
            return entry, False
    return ranked[0], True


def runner_up(ranked: list[RankedCandidate], winner: Optional[RankedCandidate]) -> Optional[RankedCandidate]:
    if winner is None:
        return None
    for entry in ranked:
        if entry is not winner:
            return entry
    return None


def selection_reason(winner: RankedCandidate) -> str:
    item = winner.item
    return (
        f"Highest overall score ({winner.score}) - top review count ({item.review_count}) "
        f"with strong rating ({item.rating}★)"
    )


def compare_with_runner_up(winner: RankedCandidate, second: Optional[RankedCandidate]) -> str:
    if second is None:
        return ""
    if second.item.review_count == 0:
        return f"{winner.item.review_count} reviews vs none for {second.item.title}"

    diff = (winner.item.review_count - second.item.review_count) / second.item.review_count * 100
    return f"{diff:.1f}% more reviews than {second.item.title}"


def _business_rules_detail(item: CatalogItem, criteria: SelectionCriteria) -> str:
    problems = []
    if item.review_count < criteria.min_reviews_for_winner:
        problems.append(f"reviews {item.review_count} < {criteria.min_reviews_for_winner}")
    if item.rating < criteria.min_rating_for_winner:
        problems.append(f"rating {item.rating} < {criteria.min_rating_for_winner}")
    if not problems:
        return "Eligible for winner selection"
    return "Excluded: " + ", ".join(problems)


def ranking_verdict(
    entry: RankedCandidate,
    winner: Optional[RankedCandidate],
    reference_price: float,
    criteria: SelectionCriteria,
) -> CandidateVerdict:
    item = entry.item
    b = entry.breakdown
    is_winner = entry is winner

    failure_reasons = []
    if not is_winner:
        if not entry.eligible:
            failure_reasons.append("Did not meet business rules for winner selection")
        else:
            failure_reasons.append(f"Ranked #{entry.rank} behind selected candidate {winner.item.id}")

    return CandidateVerdict(
        candidate=item.as_candidate(),
        passed=is_winner,
        score=entry.score,
        rank=entry.rank,
        evaluations={
            "review_count_score": RuleEvaluation(
                passed=True,
                value=b.review_count_score,
                detail=f"{b.review_count_score * 100:.1f}% ({item.review_count} reviews / 10k benchmark)",
            ),
            "rating_score": RuleEvaluation(
                passed=True,
                value=b.rating_score,
                detail=f"{b.rating_score * 100:.1f}% ({item.rating}★ / 5.0★)",
            ),
            "price_proximity_score": RuleEvaluation(
                passed=True,
                value=b.price_proximity_score,
                detail=f"{b.price_proximity_score * 100:.1f}% (distance from ${reference_price})",
            ),
            "total_score": RuleEvaluation(
                passed=True,
                value=b.total_score,
                detail=f"{b.total_score:.{criteria.score_precision}f} (60% reviews + 30% rating + 10% price)",
            ),
            "business_rules": RuleEvaluation(
                passed=entry.eligible,
                threshold={
                    "minReviews": criteria.min_reviews_for_winner,
                    "minRating": criteria.min_rating_for_winner,
                },
                detail=_business_rules_detail(item, criteria),
            ),
        },
        failure_reasons=failure_reasons,
    )


def rank_and_select(
    items: list[CatalogItem],
    reference_price: float,
    criteria: SelectionCriteria,
) -> SelectionOutcome:
    ranked = rank_candidates(items, reference_price, criteria)
    winner, used_fallback = select_winner(ranked)
    return SelectionOutcome(
        ranked=ranked,
        winner=winner,
        used_fallback=used_fallback,
        verdicts=[ranking_verdict(entry, winner, reference_price, criteria) for entry in ranked],
    )
