"""FastAPI router for project batch runs."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..batch import BatchService
from ..models import BatchRunResponse, BatchStartRequest
from ..services import get_batch_service

router = APIRouter(prefix="/api", tags=["batches"])


@router.post("/projects/{project_id}/batches", response_model=BatchRunResponse, status_code=202)
async def start_batch(
    project_id: str,
    payload: BatchStartRequest,
    batches: BatchService = Depends(get_batch_service),
) -> BatchRunResponse:
    """
    启动批处理 (异步)

    Returns:
        批处理快照；无符合条件的片段时状态为 ``nothing_to_do``
    """
    run = await batches.start(project_id, payload.kind)
    return BatchRunResponse(batch=run.snapshot())


@router.get("/batches/{batch_id}", response_model=BatchRunResponse)
async def get_batch(batch_id: str, batches: BatchService = Depends(get_batch_service)) -> BatchRunResponse:
    try:
        run = batches.get(batch_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return BatchRunResponse(batch=run.snapshot())


@router.post("/batches/{batch_id}/cancel", response_model=BatchRunResponse)
async def cancel_batch(batch_id: str, batches: BatchService = Depends(get_batch_service)) -> BatchRunResponse:
    try:
        run = batches.cancel(batch_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return BatchRunResponse(batch=run.snapshot())
