"""FastAPI router for segmentation and segment editing."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends

from ..batch import BatchService
from ..editing import SegmentEditor
from ..instrumentation import get_logger
from ..models import (
    CutRequest,
    MergeRequest,
    RetranslateRequest,
    SegmentGenerateRequest,
    SegmentListResponse,
    SegmentTranslateRequest,
    SegmentTranslateResponse,
    SegmentTranslation,
)
from ..segmentation import SegmentPipeline
from ..services import get_batch_service, get_segment_editor, get_segment_pipeline

logger = get_logger()

router = APIRouter(prefix="/api", tags=["segments"])


@router.post("/segments/generate", response_model=SegmentListResponse)
async def generate_segments(
    payload: SegmentGenerateRequest, pipeline: SegmentPipeline = Depends(get_segment_pipeline)
) -> SegmentListResponse:
    segments = await pipeline.generate(payload.script_content)
    return SegmentListResponse(segments=segments)


@router.post("/segments/translate", response_model=SegmentTranslateResponse)
async def translate_segments(
    payload: SegmentTranslateRequest, pipeline: SegmentPipeline = Depends(get_segment_pipeline)
) -> SegmentTranslateResponse:
    texts = [item.text for item in payload.segments]
    translations = await pipeline.translator.translate_many(texts, direction="en-zh")
    return SegmentTranslateResponse(
        translations=[
            SegmentTranslation(id=item.id, translation=translation)
            for item, translation in zip(payload.segments, translations)
            if translation
        ]
    )


@router.post("/projects/{project_id}/segments/{segment_id}/cut", response_model=SegmentListResponse)
async def cut_segment(
    project_id: str,
    segment_id: str,
    payload: CutRequest,
    background_tasks: BackgroundTasks,
    editor: SegmentEditor = Depends(get_segment_editor),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentListResponse:
    batches.ensure_idle(project_id)
    result = await editor.cut(project_id, segment_id, payload.offset)
    if result.needs_translation:
        background_tasks.add_task(editor.retranslate, project_id, result.needs_translation)
    return SegmentListResponse(segments=result.segments)


@router.post("/projects/{project_id}/segments/merge", response_model=SegmentListResponse)
async def merge_segments(
    project_id: str,
    payload: MergeRequest,
    background_tasks: BackgroundTasks,
    editor: SegmentEditor = Depends(get_segment_editor),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentListResponse:
    batches.ensure_idle(project_id)
    result = await editor.merge(project_id, payload.index, payload.direction)
    if result.needs_translation:
        background_tasks.add_task(editor.retranslate, project_id, result.needs_translation)
    return SegmentListResponse(segments=result.segments)


@router.post("/projects/{project_id}/segments/retranslate", response_model=SegmentListResponse)
async def retranslate_segments(
    project_id: str,
    payload: RetranslateRequest | None = None,
    editor: SegmentEditor = Depends(get_segment_editor),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentListResponse:
    batches.ensure_idle(project_id)
    segment_ids = payload.segment_ids if payload else None
    segments = await editor.retranslate(project_id, segment_ids)
    return SegmentListResponse(segments=segments)
