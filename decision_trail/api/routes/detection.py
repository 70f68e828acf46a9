"""
Competitor Detection Route

Runs the five-stage pipeline synchronously and returns the execution id,
so the full decision trail can be fetched from /executions/{id}.
"""

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from decision_trail.api.deps import get_catalog, get_settings, get_storage
from decision_trail.api.schemas import (
    CompetitorDetectionRequest,
    CompetitorDetectionResponse,
    DetectionSelection,
)
from decision_trail.catalog.models import ReferenceItem
from decision_trail.catalog.source import Catalog
from decision_trail.config.settings import Settings
from decision_trail.pipelines.competitor import (
    CompetitorDetectionError,
    ReferenceValidationError,
    SelectionCriteria,
    run_competitor_detection,
)
from decision_trail.storage import StorageAdapter

logger = structlog.get_logger(__name__)

router = APIRouter()

# Used when the request leaves reference numbers out
DEFAULT_REFERENCE_PRICE = 25.0
DEFAULT_REFERENCE_RATING = 4.2
DEFAULT_REFERENCE_REVIEWS = 1247


def build_reference(request: CompetitorDetectionRequest) -> ReferenceItem:
    ref = request.reference_product
    price = ref.price if ref and ref.price is not None else DEFAULT_REFERENCE_PRICE
    rating = ref.rating if ref and ref.rating is not None else DEFAULT_REFERENCE_RATING
    reviews = ref.reviews if ref and ref.reviews is not None else DEFAULT_REFERENCE_REVIEWS

    return ReferenceItem(
        id=ref.id if ref else None,
        title=request.product_title,
        price=price,
        rating=rating,
        review_count=reviews,
        category=request.category,
        subcategory=request.subcategory,
    )


@router.post(
    "/competitor-detection",
    response_model=CompetitorDetectionResponse,
    responses={
        404: {"description": "No competitor survived the pipeline"},
        422: {"description": "Reference title yields no keywords"},
    },
)
async def detect_competitor(
    request: CompetitorDetectionRequest,
    catalog: Catalog = Depends(get_catalog),
    storage: StorageAdapter = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    """
    Find the best competitor for the given product.
    """
    reference = build_reference(request)

    try:
        outcome = await run_competitor_detection(
            reference,
            catalog,
            storage,
            SelectionCriteria.from_settings(settings),
            auto_save=settings.auto_save,
        )
    except ReferenceValidationError as e:
        return JSONResponse(
            status_code=422,
            content={"error": str(e), "executionId": e.execution_id},
        )
    except CompetitorDetectionError as e:
        logger.error("competitor_detection_request_failed", execution_id=e.execution_id, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Failed to run competitor detection",
                "details": str(e),
                "executionId": e.execution_id,
            },
        )

    if outcome.winner is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": "No competitors found",
                "executionId": outcome.execution_id,
                "details": outcome.diagnostics,
            },
        )

    execution = outcome.execution
    return CompetitorDetectionResponse(
        execution_id=execution.id,
        status=execution.status.value,
        total_duration=execution.total_duration,
        selection=DetectionSelection(
            id=outcome.winner.item.id,
            title=outcome.winner.item.title,
            reason=execution.result.reason,
            score=outcome.winner.score,
        ),
    )
