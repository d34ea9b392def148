"""FastAPI router for descriptions, prompts, keywords, images, videos and style analysis."""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import APIRouter, Depends

from ..assets import SegmentAssetService
from ..batch import BatchService
from ..errors import PrerequisiteError
from ..instrumentation import get_logger
from ..models import (
    BatchDescriptionRequest,
    BatchItemResult,
    BatchKeywordRequest,
    BatchOptimizeRequest,
    BatchResultsResponse,
    DescriptionRequest,
    DescriptionResponse,
    ImageRequest,
    ImageResponse,
    KeywordRequest,
    KeywordResponse,
    OptimizeRequest,
    OptimizeResponse,
    ProjectResponse,
    SegmentResponse,
    StyleAnalyzeRequest,
    StyleAnalyzeResponse,
    VideoRequest,
    VideoResponse,
    VisualBibleRequest,
    VisualBibleResponse,
)
from ..services import get_asset_service, get_batch_service

logger = get_logger()

router = APIRouter(prefix="/api", tags=["generation"])


async def _collect(item_id: str, call: Callable[[], Awaitable[BatchItemResult]]) -> BatchItemResult:
    """Run one item of a stateless batch; failures become ``{id, error}``."""
    try:
        return await call()
    except Exception as exc:
        logger.error(f"Batch item {item_id} failed: {exc}")
        return BatchItemResult(id=item_id, error=str(exc))


# ============================================================================
# Stateless generation
# ============================================================================


@router.post("/visual-bible/generate", response_model=VisualBibleResponse)
async def generate_visual_bible(
    payload: VisualBibleRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> VisualBibleResponse:
    return VisualBibleResponse(visual_bible=await assets.build_visual_bible(payload.full_text))


@router.post("/descriptions/generate", response_model=DescriptionResponse)
async def generate_description(
    payload: DescriptionRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> DescriptionResponse:
    description, description_en = await assets.describe_text(
        payload.text,
        visual_bible=payload.visual_bible,
        translation=payload.translation,
        language=payload.language,
    )
    return DescriptionResponse(description=description, description_en=description_en)


@router.post("/descriptions/batch-generate", response_model=BatchResultsResponse)
async def batch_generate_descriptions(
    payload: BatchDescriptionRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> BatchResultsResponse:
    results = []
    for item in payload.segments:

        async def describe(item=item) -> BatchItemResult:
            description, description_en = await assets.describe_text(
                item.text,
                visual_bible=payload.visual_bible,
                translation=item.translation,
                language=item.language,
            )
            return BatchItemResult(id=item.id, description=description, description_en=description_en)

        results.append(await _collect(item.id, describe))
    return BatchResultsResponse(results=results)


@router.post("/descriptions/optimize", response_model=OptimizeResponse)
async def optimize_description(
    payload: OptimizeRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> OptimizeResponse:
    optimized = await assets.optimize_text(payload.description, payload.generation_mode, payload.aspect_ratio)
    return OptimizeResponse(optimized_description=optimized)


@router.post("/descriptions/batch-optimize", response_model=BatchResultsResponse)
async def batch_optimize_descriptions(
    payload: BatchOptimizeRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> BatchResultsResponse:
    results = []
    for item in payload.segments:

        async def optimize(item=item) -> BatchItemResult:
            optimized = await assets.optimize_text(
                item.description, payload.generation_mode, payload.aspect_ratio
            )
            return BatchItemResult(id=item.id, optimized_description=optimized)

        results.append(await _collect(item.id, optimize))
    return BatchResultsResponse(results=results)


@router.post("/keywords/extract", response_model=KeywordResponse)
async def extract_keywords(
    payload: KeywordRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> KeywordResponse:
    keywords, keywords_en = await assets.keywords_for(
        payload.description,
        visual_bible=payload.visual_bible,
        style_description=payload.style_description,
    )
    return KeywordResponse(keywords=keywords, keywords_en=keywords_en)


@router.post("/keywords/batch-extract", response_model=BatchResultsResponse)
async def batch_extract_keywords(
    payload: BatchKeywordRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> BatchResultsResponse:
    results = []
    for item in payload.segments:

        async def extract(item=item) -> BatchItemResult:
            keywords, keywords_en = await assets.keywords_for(
                item.description,
                visual_bible=payload.visual_bible,
                style_description=payload.style_description,
            )
            return BatchItemResult(id=item.id, keywords=keywords, keywords_en=keywords_en)

        results.append(await _collect(item.id, extract))
    return BatchResultsResponse(results=results)


@router.post("/images/generate", response_model=ImageResponse)
async def generate_image(
    payload: ImageRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> ImageResponse:
    image_url = await assets.render_image(payload.effective_prompt, payload.aspect_ratio)
    return ImageResponse(image_url=image_url)


@router.post("/videos/generate", response_model=VideoResponse)
async def generate_video(
    payload: VideoRequest, assets: SegmentAssetService = Depends(get_asset_service)
) -> VideoResponse:
    video_url = await assets.render_video(
        mode=payload.generation_mode,
        aspect_ratio=payload.aspect_ratio,
        description=payload.description,
        image_url=payload.image_url,
    )
    return VideoResponse(video_url=video_url)


@router.post("/style/analyze", response_model=StyleAnalyzeResponse)
async def analyze_style(
    payload: StyleAnalyzeRequest,
    assets: SegmentAssetService = Depends(get_asset_service),
    batches: BatchService = Depends(get_batch_service),
) -> StyleAnalyzeResponse:
    if payload.analysis_type == "preset":
        if not payload.preset_info:
            raise PrerequisiteError("缺少预设风格信息")
        source = payload.preset_info
    else:
        if not payload.image_base64:
            raise PrerequisiteError("请先上传参考图片")
        source = payload.image_base64
    if payload.project_id:
        batches.ensure_idle(payload.project_id)
    analysis = await assets.analyze_style(payload.analysis_type, source, project_id=payload.project_id)
    return StyleAnalyzeResponse(analysis=analysis)


# ============================================================================
# Project-bound generation
# ============================================================================


@router.post("/projects/{project_id}/visual-bible", response_model=ProjectResponse)
async def generate_project_visual_bible(
    project_id: str,
    assets: SegmentAssetService = Depends(get_asset_service),
    batches: BatchService = Depends(get_batch_service),
) -> ProjectResponse:
    batches.ensure_idle(project_id)
    return ProjectResponse(project=await assets.generate_visual_bible(project_id))


@router.post("/projects/{project_id}/segments/{segment_id}/description", response_model=SegmentResponse)
async def generate_segment_description(
    project_id: str,
    segment_id: str,
    assets: SegmentAssetService = Depends(get_asset_service),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentResponse:
    batches.ensure_idle(project_id)
    return SegmentResponse(segment=await assets.generate_description(project_id, segment_id))


@router.post("/projects/{project_id}/segments/{segment_id}/optimize", response_model=SegmentResponse)
async def optimize_segment_description(
    project_id: str,
    segment_id: str,
    assets: SegmentAssetService = Depends(get_asset_service),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentResponse:
    batches.ensure_idle(project_id)
    return SegmentResponse(segment=await assets.optimize_description(project_id, segment_id))


@router.post("/projects/{project_id}/segments/{segment_id}/keywords", response_model=SegmentResponse)
async def extract_segment_keywords(
    project_id: str,
    segment_id: str,
    assets: SegmentAssetService = Depends(get_asset_service),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentResponse:
    batches.ensure_idle(project_id)
    return SegmentResponse(segment=await assets.extract_keywords(project_id, segment_id))


@router.post("/projects/{project_id}/segments/{segment_id}/image", response_model=SegmentResponse)
async def generate_segment_image(
    project_id: str,
    segment_id: str,
    assets: SegmentAssetService = Depends(get_asset_service),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentResponse:
    batches.ensure_idle(project_id)
    return SegmentResponse(segment=await assets.generate_image(project_id, segment_id))


@router.post("/projects/{project_id}/segments/{segment_id}/video", response_model=SegmentResponse)
async def generate_segment_video(
    project_id: str,
    segment_id: str,
    assets: SegmentAssetService = Depends(get_asset_service),
    batches: BatchService = Depends(get_batch_service),
) -> SegmentResponse:
    batches.ensure_idle(project_id)
    return SegmentResponse(segment=await assets.generate_video(project_id, segment_id))
