"""Stage 4: Relevance Classification - Separate true competitors from false positives.

Accept/reject is deterministic:
- A title mentioning an accessory keyword is rejected outright
- Otherwise the item must share both category and subcategory with the reference

The confidence attached to each decision is drawn at random inside a fixed
band. It is reported for inspection only and never affects the outcome.
"""

import random
from typing import Optional

from decision_trail.catalog.models import CatalogItem, ReferenceItem
from decision_trail.pipelines.competitor.models import RelevanceDecision, RelevanceOutcome
from decision_trail.trace.models import CandidateVerdict, RuleEvaluation

ACCESSORY_KEYWORDS = ("brush", "bag", "lid", "replacement", "cleaning")

# (floor, spread) of the reported confidence band
COMPETITOR_CONFIDENCE = (0.92, 0.07)
REJECTION_CONFIDENCE = (0.95, 0.04)


def find_accessory_keyword(title: str) -> Optional[str]:
    title_lower = title.lower()
    for keyword in ACCESSORY_KEYWORDS:
        if keyword in title_lower:
            return keyword
    return None


def is_accessory(title: str) -> bool:
    return find_accessory_keyword(title) is not None


def _rejection_reason(item: CatalogItem, reference: ReferenceItem) -> str:
    if item.category != reference.category:
        return f"Different category: {item.category} vs {reference.category}"
    if item.subcategory != reference.subcategory:
        return f"Different subcategory: {item.subcategory} vs {reference.subcategory}"
    return "Identified as accessory or replacement part, not a direct competitor"


def classify_item(
    item: CatalogItem,
    reference: ReferenceItem,
    rng: random.Random,
) -> RelevanceDecision:
    accessory = is_accessory(item.title)
    same_category = item.category == reference.category
    same_subcategory = item.subcategory == reference.subcategory
    is_competitor = not accessory and same_category and same_subcategory

    floor, spread = COMPETITOR_CONFIDENCE if is_competitor else REJECTION_CONFIDENCE
    confidence = round(floor + rng.random() * spread, 2)

    return RelevanceDecision(
        item=item,
        is_accessory=accessory,
        is_competitor=is_competitor,
        confidence=confidence,
        rejection_reason=None if is_competitor else _rejection_reason(item, reference),
    )


def _decision_verdict(decision: RelevanceDecision, reference: ReferenceItem) -> CandidateVerdict:
    item = decision.item
    accessory_keyword = find_accessory_keyword(item.title)
    confidence_pct = f"{decision.confidence * 100:.1f}%"

    if decision.is_competitor:
        competitor_detail = (
            f"True competitor in {item.category} > {item.subcategory} (confidence: {confidence_pct})"
        )
    else:
        if item.category != reference.category:
            kind = "different category"
        elif item.subcategory != reference.subcategory:
            kind = "different subcategory"
        else:
            kind = "accessory/replacement part"
        competitor_detail = f"False positive - {kind} (confidence: {confidence_pct})"

    category_ok = item.category == reference.category and item.subcategory == reference.subcategory

    return CandidateVerdict(
        candidate=item.as_candidate(category=item.category, subcategory=item.subcategory),
        passed=decision.is_competitor,
        evaluations={
            "is_competitor": RuleEvaluation(
                passed=decision.is_competitor,
                detail=competitor_detail,
            ),
            "category_match": RuleEvaluation(
                passed=category_ok,
                value=f"{item.category} > {item.subcategory}",
                threshold=f"{reference.category} > {reference.subcategory}",
                detail="Same category and subcategory" if category_ok else "Category or subcategory differs",
            ),
            "accessory_check": RuleEvaluation(
                passed=accessory_keyword is None,
                value=accessory_keyword,
                threshold=list(ACCESSORY_KEYWORDS),
                detail=(
                    "No accessory keywords in title" if accessory_keyword is None
                    else f"Title mentions '{accessory_keyword}'"
                ),
            ),
        },
        failure_reasons=[] if decision.is_competitor else [decision.rejection_reason],
        metadata={"confidence": decision.confidence},
    )


def classify_relevance(
    items: list[CatalogItem],
    reference: ReferenceItem,
    rng: Optional[random.Random] = None,
) -> RelevanceOutcome:
    rng = rng or random.Random()
    decisions = [classify_item(item, reference, rng) for item in items]
    return RelevanceOutcome(
        decisions=decisions,
        verdicts=[_decision_verdict(d, reference) for d in decisions],
    )
