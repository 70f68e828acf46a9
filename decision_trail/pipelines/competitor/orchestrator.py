"""Competitor Detection Orchestrator - Runs the five stages and records each one.

Stage flow:
1. keyword_generation        reference title → search keywords
2. candidate_search          keywords × catalog → candidates
3. apply_filters             price / rating / review gates
4. relevance_classification  drop accessories and off-category items
5. rank_and_select           weighted score → winner

Every stage is recorded as exactly one step, so a finished execution can
answer "why was this product chosen" and "why was that one dropped".
"""

import random
from typing import Any, Optional

import structlog

from decision_trail.catalog.models import CatalogItem, ReferenceItem
from decision_trail.catalog.source import Catalog
from decision_trail.pipelines.competitor.errors import (
    CompetitorDetectionError,
    ReferenceValidationError,
)
from decision_trail.pipelines.competitor.models import (
    DetectionOutcome,
    FilterOutcome,
    KeywordSet,
    RelevanceOutcome,
    SearchResult,
    SelectionCriteria,
    SelectionOutcome,
)
from decision_trail.pipelines.competitor.stages import (
    ACCESSORY_KEYWORDS,
    apply_filters,
    classify_relevance,
    generate_keywords,
    rank_and_select,
    search_candidates,
)
from decision_trail.pipelines.competitor.stages.ranking import (
    RANKING_WEIGHTS,
    compare_with_runner_up,
    runner_up,
    selection_reason,
)
from decision_trail.storage.base import StorageAdapter
from decision_trail.trace.models import ExecutionResult, ExecutionStatus
from decision_trail.trace.recorder import ExecutionRecorder

logger = structlog.get_logger(__name__)

PIPELINE_NAME = "competitor-detection"
PIPELINE_VERSION = "1.0"
NO_COMPETITORS_REASON = "No competitors found"


async def run_competitor_detection(
    reference: ReferenceItem,
    catalog: Catalog,
    storage: StorageAdapter,
    criteria: Optional[SelectionCriteria] = None,
    *,
    execution_id: Optional[str] = None,
    auto_save: bool = False,
    rng: Optional[random.Random] = None,
) -> DetectionOutcome:
    """Find the best competitor for a reference item.

    An empty result at any stage is not an error: the remaining stages run
    on empty input and the execution completes with status ``failure``.

    Args:
        reference: The item competitors are searched for.
        catalog: Read-only item source, fetched once.
        storage: Adapter the execution is persisted to.
        criteria: Filter and winner thresholds; defaults apply when omitted.
        execution_id: Explicit id for the execution.
        auto_save: Persist a snapshot after every step.
        rng: Source for the diagnostic relevance confidence.

    Returns:
        DetectionOutcome with the recorder, the winner (or None) and the
        diagnostics counters.

    Raises:
        ReferenceValidationError: The title yields no keywords. The failed
            execution is persisted and its id is on the error.
        CompetitorDetectionError: The catalog or a stage raised. The failed
            execution is persisted and its id is on the error.
    """
    criteria = criteria or SelectionCriteria()
    recorder = ExecutionRecorder.create(
        PIPELINE_NAME,
        storage,
        execution_id=execution_id,
        auto_save=auto_save,
        metadata={"referenceItem": reference.summary(), "version": PIPELINE_VERSION},
    )
    diagnostics: dict[str, Any] = {
        "totalProducts": 0,
        "candidatesFound": 0,
        "passedFilters": 0,
        "confirmedCompetitors": 0,
    }

    logger.info(
        "competitor_detection_start",
        execution_id=recorder.id,
        title=reference.title,
        category=reference.category,
        subcategory=reference.subcategory,
    )

    try:
        # Stage 1: Keyword Generation
        keywords = _run_keyword_generation(recorder, reference)

        items = await catalog.list_items(reference.category, reference.subcategory)
        diagnostics["totalProducts"] = len(items)
        logger.debug("catalog_fetched", execution_id=recorder.id, items=len(items))

        # Stage 2: Candidate Search
        search = _run_candidate_search(recorder, items, keywords, reference)
        diagnostics["candidatesFound"] = len(search.candidates)

        # Stage 3: Rule Filtering
        filtered = _run_filters(recorder, search.candidates, reference, criteria)
        diagnostics["passedFilters"] = len(filtered.passed)

        # Stage 4: Relevance Classification
        relevance = _run_relevance(recorder, filtered.passed, reference, rng)
        diagnostics["confirmedCompetitors"] = len(relevance.confirmed)

        # Stage 5: Ranking & Selection
        selection = _run_rank_and_select(recorder, relevance.confirmed, reference, criteria)

    except ReferenceValidationError as e:
        e.execution_id = recorder.id
        logger.warning("competitor_detection_invalid_reference", execution_id=recorder.id, error=str(e))
        await _fail(recorder, e, diagnostics)
        raise

    except Exception as e:
        logger.error(
            "competitor_detection_failed",
            execution_id=recorder.id,
            error=str(e),
            error_type=type(e).__name__,
        )
        await _fail(recorder, e, diagnostics)
        raise CompetitorDetectionError(
            f"Competitor detection failed: {e}", execution_id=recorder.id
        ) from e

    recorder.set_metadata(diagnostics)
    winner = selection.winner

    if winner is None:
        recorder.set_result(ExecutionResult(reason=NO_COMPETITORS_REASON))
        await recorder.complete(ExecutionStatus.FAILURE)
        logger.warning("competitor_detection_no_winner", execution_id=recorder.id, **diagnostics)
    else:
        recorder.set_result(ExecutionResult(
            selected=winner.item.as_candidate(),
            reason=selection_reason(winner),
            confidence=winner.score,
        ))
        await recorder.complete(ExecutionStatus.SUCCESS)
        logger.info(
            "competitor_detection_complete",
            execution_id=recorder.id,
            winner=winner.item.id,
            score=winner.score,
            used_fallback=selection.used_fallback,
            duration_ms=recorder.execution.total_duration,
        )

    return DetectionOutcome(recorder=recorder, winner=winner, diagnostics=diagnostics)


async def _fail(recorder: ExecutionRecorder, error: Exception, diagnostics: dict[str, Any]) -> None:
    recorder.set_metadata({
        **diagnostics,
        "error": str(error),
        "errorType": type(error).__name__,
    })
    await recorder.complete(ExecutionStatus.FAILURE)


def _run_keyword_generation(recorder: ExecutionRecorder, reference: ReferenceItem) -> KeywordSet:
    """Stage 1: Derive keywords from the reference title."""
    logger.info("stage_1_keyword_generation_start", execution_id=recorder.id)
    builder = recorder.step("keyword_generation").input({
        "product_title": reference.title,
        "category": reference.category,
        "subcategory": reference.subcategory,
    })

    try:
        keywords = generate_keywords(reference.title)
    except ReferenceValidationError as e:
        builder.output({"keywords": []}).reason(str(e)).record()
        raise

    builder.output({
        "keywords": keywords.keywords,
        "primary_keyword": keywords.primary,
        "secondary_keyword": keywords.secondary,
    }).reason(
        f"Extracted {len(keywords.tokens)} key terms from product title, "
        f"removing stop words and short tokens"
    ).record()

    logger.info("stage_1_complete", execution_id=recorder.id, tokens=len(keywords.tokens))
    return keywords


def _run_candidate_search(
    recorder: ExecutionRecorder,
    items: list[CatalogItem],
    keywords: KeywordSet,
    reference: ReferenceItem,
) -> SearchResult:
    """Stage 2: Keyword match over the fetched catalog."""
    logger.info("stage_2_candidate_search_start", execution_id=recorder.id)
    builder = recorder.step("candidate_search").input({
        "keywords": keywords.keywords,
        "search_terms": keywords.primary.split(" "),
        "category_filter": reference.category,
        "subcategory_filter": reference.subcategory,
        "catalog_size": len(items),
    })

    result = search_candidates(items, keywords, reference.id)

    builder.output({
        "total_results": len(result.candidates),
        "candidates": [
            {**item.as_candidate(), "matched_terms": result.matched_terms[item.id]}
            for item in result.candidates
        ],
    }).reason(
        f"Found {len(result.candidates)} of {result.total_products} products matching "
        f"search terms: {', '.join(result.search_terms)}"
    ).record()

    logger.info(
        "stage_2_complete",
        execution_id=recorder.id,
        total_products=result.total_products,
        candidates=len(result.candidates),
    )
    return result


def _run_filters(
    recorder: ExecutionRecorder,
    candidates: list[CatalogItem],
    reference: ReferenceItem,
    criteria: SelectionCriteria,
) -> FilterOutcome:
    """Stage 3: Apply the price, rating and review gates."""
    logger.info("stage_3_filters_start", execution_id=recorder.id)
    builder = recorder.step("apply_filters").input({
        "candidates_count": len(candidates),
        "reference_product": reference.summary(),
        "filters": {
            "price_ratio": [criteria.price_min_ratio, criteria.price_max_ratio],
            "min_rating": criteria.min_rating,
            "min_reviews": criteria.min_reviews,
        },
    })

    outcome = apply_filters(candidates, reference, criteria)

    builder.output({
        "passed": len(outcome.passed),
        "failed": outcome.failed_count,
        "price_range": {"min": round(outcome.price_min, 2), "max": round(outcome.price_max, 2)},
    }).reason(
        f"Applied price ({criteria.price_min_ratio}x-{criteria.price_max_ratio}x), "
        f"rating (>={criteria.min_rating}) and review (>={criteria.min_reviews}) filters: "
        f"{len(outcome.passed)} of {len(candidates)} candidates passed"
    ).candidates(outcome.verdicts).filters(outcome.rule_verdicts).record()

    logger.info(
        "stage_3_complete",
        execution_id=recorder.id,
        passed=len(outcome.passed),
        failed=outcome.failed_count,
    )
    return outcome


def _run_relevance(
    recorder: ExecutionRecorder,
    candidates: list[CatalogItem],
    reference: ReferenceItem,
    rng: Optional[random.Random],
) -> RelevanceOutcome:
    """Stage 4: Keep same-category, non-accessory items."""
    logger.info("stage_4_relevance_start", execution_id=recorder.id)
    builder = recorder.step("relevance_classification").input({
        "candidates_count": len(candidates),
        "reference_product": {
            "title": reference.title,
            "category": reference.category,
            "subcategory": reference.subcategory,
        },
        "accessory_keywords": list(ACCESSORY_KEYWORDS),
    })

    outcome = classify_relevance(candidates, reference, rng)
    confirmed = len(outcome.confirmed)

    builder.output({
        "confirmed_competitors": confirmed,
        "false_positives_removed": len(candidates) - confirmed,
    }).reason(
        f"Classified {len(candidates)} candidates by category match and accessory keywords: "
        f"{confirmed} confirmed as true competitors"
    ).candidates(outcome.verdicts).record()

    logger.info(
        "stage_4_complete",
        execution_id=recorder.id,
        confirmed=confirmed,
        rejected=len(candidates) - confirmed,
    )
    return outcome


def _run_rank_and_select(
    recorder: ExecutionRecorder,
    competitors: list[CatalogItem],
    reference: ReferenceItem,
    criteria: SelectionCriteria,
) -> SelectionOutcome:
    """Stage 5: Score, rank and pick the winner."""
    logger.info("stage_5_rank_and_select_start", execution_id=recorder.id)
    builder = recorder.step("rank_and_select").input({
        "candidates_count": len(competitors),
        "reference_product": reference.summary(),
        "ranking_criteria": {
            "weights": RANKING_WEIGHTS,
            "business_rules": {
                "min_reviews_for_winner": criteria.min_reviews_for_winner,
                "min_rating_for_winner": criteria.min_rating_for_winner,
            },
        },
    })

    outcome = rank_and_select(competitors, reference.price, criteria)
    winner = outcome.winner

    if winner is None:
        builder.output({"selected_competitor": None, "ranked": 0}).reason(
            "No confirmed competitors to rank"
        ).candidates([]).record()
        logger.info("stage_5_complete", execution_id=recorder.id, winner=None)
        return outcome

    comparison = compare_with_runner_up(winner, runner_up(outcome.ranked, winner))
    reason = f"Selected rank #{winner.rank} based on highest eligible score after applying business rules"
    if outcome.used_fallback:
        reason = (
            f"Selected rank #{winner.rank} as fallback: no candidate met the business rules "
            f"for winner selection"
        )

    builder.output({
        "selected_competitor": winner.item.as_candidate(),
        "ranking_position": winner.rank,
        "total_score": winner.score,
        "used_fallback": outcome.used_fallback,
        "comparison": comparison,
    }).reason(reason).candidates(outcome.verdicts).record()

    logger.info(
        "stage_5_complete",
        execution_id=recorder.id,
        winner=winner.item.id,
        score=winner.score,
        ranked=len(outcome.ranked),
    )
    return outcome
