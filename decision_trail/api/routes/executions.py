"""
Execution Routes

Endpoints for storing and inspecting recorded executions.
"""

from typing import Any, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from decision_trail.api.deps import get_storage
from decision_trail.api.schemas import (
    ExecutionListItem,
    ExecutionListResponse,
    ExecutionSummaryResponse,
    FailuresResponse,
    SaveExecutionResponse,
)
from decision_trail.storage import StorageAdapter, list_recent_executions
from decision_trail.trace.models import Execution
from decision_trail.trace.recorder import ExecutionRecorder

logger = structlog.get_logger(__name__)

router = APIRouter()


async def _load_recorder(execution_id: str, storage: StorageAdapter) -> ExecutionRecorder:
    recorder = await ExecutionRecorder.load(execution_id, storage)
    if recorder is None:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")
    return recorder


# =============================================================================
# List / Save
# =============================================================================

@router.get("/executions", response_model=ExecutionListResponse)
async def list_executions(
    pipeline: Optional[str] = Query(default=None, description="Only this pipeline name"),
    limit: int = Query(default=50, ge=1, le=200),
    storage: StorageAdapter = Depends(get_storage),
) -> ExecutionListResponse:
    """
    List executions, newest first.
    """
    executions = await list_recent_executions(storage, pipeline_name=pipeline, limit=limit)
    return ExecutionListResponse(
        executions=[ExecutionListItem.from_execution(e) for e in executions],
        count=len(executions),
    )


@router.post(
    "/executions",
    response_model=SaveExecutionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def save_execution(
    document: dict[str, Any] = Body(...),
    storage: StorageAdapter = Depends(get_storage),
) -> SaveExecutionResponse:
    """
    Store an execution document produced elsewhere.

    The document is validated against the execution model before saving;
    an existing execution with the same id is replaced.
    """
    try:
        execution = Execution.from_document(document)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=jsonable_encoder(e.errors(include_url=False, include_context=False)),
        )

    await storage.save(execution)
    logger.info("execution_saved", execution_id=execution.id, pipeline=execution.pipeline_name)
    return SaveExecutionResponse(execution_id=execution.id)


# =============================================================================
# Single Execution
# =============================================================================

@router.get("/executions/{execution_id}")
async def get_execution(
    execution_id: str,
    storage: StorageAdapter = Depends(get_storage),
) -> dict[str, Any]:
    """
    Full execution document, including every step and candidate verdict.
    """
    execution = await storage.get(execution_id)
    if execution is None:
        raise HTTPException(status_code=404, detail=f"Execution not found: {execution_id}")
    return execution.to_document()


@router.get("/executions/{execution_id}/summary", response_model=ExecutionSummaryResponse)
async def get_execution_summary(
    execution_id: str,
    storage: StorageAdapter = Depends(get_storage),
) -> ExecutionSummaryResponse:
    recorder = await _load_recorder(execution_id, storage)
    return ExecutionSummaryResponse(execution_id=execution_id, **recorder.get_summary())


@router.get("/executions/{execution_id}/failures", response_model=FailuresResponse)
async def get_execution_failures(
    execution_id: str,
    rule: str = Query(..., min_length=1, description="Rule (evaluation) name"),
    storage: StorageAdapter = Depends(get_storage),
) -> FailuresResponse:
    """
    Candidates that failed the named rule, in step order.
    """
    recorder = await _load_recorder(execution_id, storage)
    failures = recorder.find_failures_by_filter(rule)
    return FailuresResponse(
        execution_id=execution_id,
        rule=rule,
        count=len(failures),
        failures=[f.model_dump(mode="json", by_alias=True) for f in failures],
    )
