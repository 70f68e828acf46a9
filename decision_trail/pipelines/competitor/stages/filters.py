"""Stage 3: Rule Filtering - Three independent numeric gates.

Gates (all must pass):
- price_range: price within [min_ratio, max_ratio] × reference price
- min_rating:  rating at or above the minimum
- min_reviews: review count at or above the minimum

Every candidate gets one evaluation per gate with a readable detail string,
and the step gets one aggregate FilterVerdict per gate.
"""

from decision_trail.catalog.models import CatalogItem, ReferenceItem
from decision_trail.pipelines.competitor.models import FilterOutcome, SelectionCriteria
from decision_trail.trace.models import CandidateVerdict, FilterVerdict, RuleEvaluation

RULE_NAMES = ("price_range", "min_rating", "min_reviews")


def evaluate_price(price: float, price_min: float, price_max: float) -> RuleEvaluation:
    in_range = price_min <= price <= price_max
    if in_range:
        position = "within"
    elif price < price_min:
        position = "below"
    else:
        position = "above"

    return RuleEvaluation(
        passed=in_range,
        value=price,
        threshold=f"{price_min:.2f}-{price_max:.2f}",
        detail=f"${price:.2f} is {position} ${price_min:.2f}-${price_max:.2f}",
    )


def evaluate_rating(rating: float, min_rating: float) -> RuleEvaluation:
    ok = rating >= min_rating
    return RuleEvaluation(
        passed=ok,
        value=rating,
        threshold=min_rating,
        detail=f"{rating}★ {'>=' if ok else '<'} {min_rating}★",
    )


def evaluate_reviews(review_count: int, min_reviews: int) -> RuleEvaluation:
    ok = review_count >= min_reviews
    return RuleEvaluation(
        passed=ok,
        value=review_count,
        threshold=min_reviews,
        detail=f"{review_count} reviews {'>=' if ok else '<'} {min_reviews}",
    )


def apply_filters(
    candidates: list[CatalogItem],
    reference: ReferenceItem,
    criteria: SelectionCriteria,
) -> FilterOutcome:
    price_min = reference.price * criteria.price_min_ratio
    price_max = reference.price * criteria.price_max_ratio

    verdicts = []
    passed = []
    pass_counts = {name: 0 for name in RULE_NAMES}

    for item in candidates:
        evaluations = {
            "price_range": evaluate_price(item.price, price_min, price_max),
            "min_rating": evaluate_rating(item.rating, criteria.min_rating),
            "min_reviews": evaluate_reviews(item.review_count, criteria.min_reviews),
        }
        for name, evaluation in evaluations.items():
            if evaluation.passed:
                pass_counts[name] += 1

        qualified = all(e.passed for e in evaluations.values())
        if qualified:
            passed.append(item)

        verdicts.append(CandidateVerdict(
            candidate=item.as_candidate(),
            passed=qualified,
            evaluations=evaluations,
            failure_reasons=[e.detail for e in evaluations.values() if not e.passed],
        ))

    rule_descriptions = {
        "price_range": f"{criteria.price_min_ratio}x - {criteria.price_max_ratio}x of reference price "
                       f"(${price_min:.2f}-${price_max:.2f})",
        "min_rating": f"Must be at least {criteria.min_rating} stars",
        "min_reviews": f"Must have at least {criteria.min_reviews} review(s)",
    }
    rule_verdicts = [
        FilterVerdict(
            name=name,
            passed=pass_counts[name] > 0,
            applied=bool(candidates),
            detail=f"{pass_counts[name]}/{len(candidates)} candidates passed: {rule_descriptions[name]}",
        )
        for name in RULE_NAMES
    ]

    return FilterOutcome(
        price_min=price_min,
        price_max=price_max,
        verdicts=verdicts,
        passed=passed,
        rule_verdicts=rule_verdicts,
    )
