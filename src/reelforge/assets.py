"""Per-segment asset generation.

A segment moves through description -> optimized prompt (optional) -> image
(image-to-video mode only) -> video. Each ``apply_*`` step mutates one segment
in place and never persists; the project-level operations wrap a step, then
persist the whole segment list. Persistence failures are logged only.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from .errors import ContentFilteredError, EmptyVendorResponseError, PrerequisiteError
from .instrumentation import emit_event, get_logger
from .models import (
    BatchKind,
    GenerationMode,
    Project,
    Segment,
    StyleSettings,
    VisualBible,
)
from .prompts import (
    DESCRIPTION_SYSTEM,
    KEYWORDS_SYSTEM,
    VISUAL_BIBLE_SYSTEM,
    description_prompt,
    keywords_prompt,
    optimize_prompt,
    optimize_system,
    visual_bible_prompt,
)
from .providers import ProviderSet
from .repository import BaseProjectRepository, project_repository
from .serialization import ModelOutputParseError, decode_model_json

logger = get_logger()

SegmentStep = Callable[[Project, Segment], Awaitable[Segment]]


def parse_visual_bible(reply: str) -> VisualBible:
    """JSON 解析失败时，把原始回复整体放进 overall_theme。"""
    try:
        data = decode_model_json(reply, expect=dict)
    except ModelOutputParseError:
        logger.warning("Visual bible reply is not JSON, storing raw text")
        return VisualBible(overall_theme=reply.strip())
    fields = VisualBible.model_fields
    return VisualBible(**{name: _as_text(data.get(name)) for name in fields})


def parse_description(reply: str) -> str:
    try:
        data = decode_model_json(reply, expect=dict)
    except ModelOutputParseError:
        return reply.strip()
    description = data.get("storyboard_description")
    if isinstance(description, str) and description.strip():
        return description.strip()
    return reply.strip()


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        return "；".join(_as_text(item) for item in value)
    if isinstance(value, dict):
        return "；".join(f"{key}: {_as_text(item)}" for key, item in value.items())
    return str(value)


def video_ready(segment: Segment, mode: GenerationMode) -> bool:
    if mode == GenerationMode.TEXT_TO_VIDEO:
        return bool(segment.prompt_description)
    return bool(segment.image_url)


class SegmentAssetService:
    """Drives description, prompt, keyword, image and video generation per segment."""

    def __init__(
        self,
        repository: BaseProjectRepository | None = None,
        providers: ProviderSet | None = None,
    ) -> None:
        self.repository = repository or project_repository
        self.providers = providers or ProviderSet()

    # ------------------------------------------------------------------
    # Stateless operations
    # ------------------------------------------------------------------

    async def build_visual_bible(self, full_text: str) -> VisualBible:
        reply = await self.providers.describer.complete(
            visual_bible_prompt(full_text), system_prompt=VISUAL_BIBLE_SYSTEM, temperature=0.7
        )
        return parse_visual_bible(reply)

    async def describe_text(
        self,
        text: str,
        *,
        visual_bible: VisualBible,
        translation: str | None = None,
        language: str | None = None,
    ) -> tuple[str, str]:
        """返回 (中文描述, 英文描述)。英文翻译失败时回退为中文原文。"""
        reply = await self.providers.describer.complete(
            description_prompt(text, visual_bible=visual_bible, translation=translation, language=language),
            system_prompt=DESCRIPTION_SYSTEM,
            temperature=0.7,
        )
        description = parse_description(reply)
        if not description:
            raise EmptyVendorResponseError(self.providers.describer.name, "empty description")
        return description, await self._to_english(description, kind="description")

    async def optimize_text(self, description: str, mode: GenerationMode, aspect_ratio: str) -> str:
        optimized = await self.providers.describer.complete(
            optimize_prompt(description),
            system_prompt=optimize_system(mode, aspect_ratio),
            temperature=0.7,
        )
        optimized = optimized.strip()
        if not optimized:
            raise EmptyVendorResponseError(self.providers.describer.name, "empty optimized description")
        return optimized

    async def keywords_for(
        self,
        description: str,
        *,
        visual_bible: VisualBible | None = None,
        style_description: str | None = None,
    ) -> tuple[str, str]:
        reply = await self.providers.describer.complete(
            keywords_prompt(description, visual_bible=visual_bible, style_description=style_description),
            system_prompt=KEYWORDS_SYSTEM,
            temperature=0.5,
        )
        keywords = reply.strip()
        if not keywords:
            raise EmptyVendorResponseError(self.providers.describer.name, "empty keywords")
        return keywords, await self._to_english(keywords, kind="keywords")

    async def render_image(self, prompt: str, aspect_ratio: str) -> str:
        if not prompt.strip():
            raise PrerequisiteError("请先生成描述词")
        try:
            return await self.providers.images.generate_image(prompt, aspect_ratio=aspect_ratio)
        except EmptyVendorResponseError as exc:
            logger.warning(f"Image generation returned no image: {exc}")
            raise ContentFilteredError() from exc

    async def render_video(
        self,
        *,
        mode: GenerationMode,
        aspect_ratio: str,
        description: str | None = None,
        image_url: str | None = None,
    ) -> str:
        if mode == GenerationMode.TEXT_TO_VIDEO and not description:
            raise PrerequisiteError("请先生成描述词")
        if mode == GenerationMode.TEXT_TO_IMAGE_TO_VIDEO and not image_url:
            raise PrerequisiteError("请先生成图片")
        result = await self.providers.videos.generate_video(
            prompt=description or "",
            image_url=image_url if mode == GenerationMode.TEXT_TO_IMAGE_TO_VIDEO else None,
            aspect_ratio=aspect_ratio,
        )
        video_url = result.get("video_url")
        if not video_url:
            raise EmptyVendorResponseError(self.providers.videos.name, "no video_url")
        return video_url

    async def _to_english(self, text: str, *, kind: str) -> str:
        try:
            return await self.providers.translator.translate(text, kind=kind, direction="zh-en")
        except Exception as exc:
            logger.warning(f"Translation of {kind} failed, keeping native text: {exc}")
            return text

    # ------------------------------------------------------------------
    # Segment steps (mutate, no persistence)
    # ------------------------------------------------------------------

    async def apply_description(self, project: Project, segment: Segment) -> Segment:
        if not segment.text.strip():
            raise PrerequisiteError("片段文案为空")
        if project.visual_bible is None:
            raise PrerequisiteError("请先生成导演视觉圣经")
        description, description_en = await self.describe_text(
            segment.text,
            visual_bible=project.visual_bible,
            translation=segment.translation,
            language=segment.language,
        )
        segment.scene_description = description
        segment.description_en = description_en
        segment.description_aspect_ratio = project.aspect_ratio
        return segment

    async def apply_optimize(self, project: Project, segment: Segment) -> Segment:
        if not segment.scene_description:
            raise PrerequisiteError("请先生成描述词")
        segment.optimized_description = await self.optimize_text(
            segment.scene_description, project.effective_mode, project.aspect_ratio
        )
        return segment

    async def apply_keywords(self, project: Project, segment: Segment) -> Segment:
        if not segment.scene_description:
            raise PrerequisiteError("请先生成描述词")
        style = project.style_settings.style_description if project.style_settings else None
        segment.keywords, segment.keywords_en = await self.keywords_for(
            segment.scene_description, visual_bible=project.visual_bible, style_description=style
        )
        return segment

    async def apply_image(self, project: Project, segment: Segment) -> Segment:
        if project.effective_mode != GenerationMode.TEXT_TO_IMAGE_TO_VIDEO:
            raise PrerequisiteError("文生视频模式不需要生成图片")
        if not segment.prompt_description:
            raise PrerequisiteError("请先生成描述词")
        segment.image_url = await self.render_image(segment.prompt_description, project.aspect_ratio)
        emit_event("segment_image_generated", project_id=project.id, segment_id=segment.id)
        return segment

    async def apply_video(self, project: Project, segment: Segment) -> Segment:
        segment.video_url = await self.render_video(
            mode=project.effective_mode,
            aspect_ratio=project.aspect_ratio,
            description=segment.prompt_description,
            image_url=segment.image_url,
        )
        emit_event("segment_video_generated", project_id=project.id, segment_id=segment.id)
        return segment

    def step_for(self, kind: BatchKind) -> SegmentStep:
        return {
            BatchKind.DESCRIPTIONS: self.apply_description,
            BatchKind.OPTIMIZE: self.apply_optimize,
            BatchKind.KEYWORDS: self.apply_keywords,
            BatchKind.IMAGES: self.apply_image,
            BatchKind.VIDEOS: self.apply_video,
        }[kind]

    # ------------------------------------------------------------------
    # Project operations (load, apply, persist)
    # ------------------------------------------------------------------

    async def generate_visual_bible(self, project_id: str) -> Project:
        project = await self.repository.get(project_id)
        full_text = "\n".join(segment.text for segment in project.segments) or (project.script_content or "")
        if not full_text.strip():
            raise PrerequisiteError("请先输入文案")
        project.visual_bible = await self.build_visual_bible(full_text)
        project.touch()
        await self.persist(project)
        return project

    async def generate_description(self, project_id: str, segment_id: str) -> Segment:
        return await self._run_step(BatchKind.DESCRIPTIONS, project_id, segment_id)

    async def optimize_description(self, project_id: str, segment_id: str) -> Segment:
        return await self._run_step(BatchKind.OPTIMIZE, project_id, segment_id)

    async def extract_keywords(self, project_id: str, segment_id: str) -> Segment:
        return await self._run_step(BatchKind.KEYWORDS, project_id, segment_id)

    async def generate_image(self, project_id: str, segment_id: str) -> Segment:
        return await self._run_step(BatchKind.IMAGES, project_id, segment_id)

    async def generate_video(self, project_id: str, segment_id: str) -> Segment:
        return await self._run_step(BatchKind.VIDEOS, project_id, segment_id)

    async def analyze_style(
        self, kind: str, payload: str | dict[str, Any], project_id: str | None = None
    ) -> str:
        analysis = await self.providers.analyzer.analyze(kind, payload)
        if project_id:
            project = await self.repository.get(project_id)
            settings = project.style_settings or StyleSettings()
            settings.style_description = analysis
            project.style_settings = settings
            project.touch()
            await self.persist(project)
        return analysis

    async def _run_step(self, kind: BatchKind, project_id: str, segment_id: str) -> Segment:
        project = await self.repository.get(project_id)
        segment = project.find_segment(segment_id)
        await self.step_for(kind)(project, segment)
        project.touch()
        await self.persist(project)
        return segment

    async def persist(self, project: Project) -> None:
        try:
            await self.repository.upsert(project)
        except Exception as exc:
            logger.error(f"Failed to persist project {project.id}: {exc}")
