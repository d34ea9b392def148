"""Project, segment and API payload models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NATIVE_LANGUAGE = "Chinese"
FOREIGN_LANGUAGE = "English"

AspectRatio = Literal["9:16", "3:4", "1:1", "16:9", "4:3"]


class CamelModel(BaseModel):
    """Models exchanged with the wizard frontend use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationMode(str, Enum):
    TEXT_TO_VIDEO = "text-to-video"
    TEXT_TO_IMAGE_TO_VIDEO = "text-to-image-to-video"


class StyleSettings(CamelModel):
    use_character_reference: bool = False
    character_image_url: str | None = None
    use_style_reference: bool = False
    style_image_url: str | None = None
    use_preset_style: bool = False
    preset_style_id: str | None = None
    style_description: str | None = None


class VisualBible(CamelModel):
    """Project-wide consistency anchor consumed by every description call."""

    overall_theme: str = ""
    emotional_arc: str = ""
    visual_metaphor: str = ""
    lighting_and_color: str = ""
    core_anchors: str = ""

    def as_prompt_block(self) -> str:
        return "\n".join(
            [
                f"整体主题: {self.overall_theme}",
                f"情感弧线: {self.emotional_arc}",
                f"视觉隐喻: {self.visual_metaphor}",
                f"光影与色彩: {self.lighting_and_color}",
                f"核心元素锚点: {self.core_anchors}",
            ]
        )


class Segment(CamelModel):
    id: str
    number: int
    language: str = NATIVE_LANGUAGE
    text: str
    translation: str | None = None
    scene_description: str | None = None
    description_en: str | None = None
    optimized_description: str | None = None
    keywords: str | None = None
    keywords_en: str | None = None
    description_aspect_ratio: str | None = None
    image_url: str | None = None
    video_url: str | None = None

    @property
    def is_foreign(self) -> bool:
        return self.language == FOREIGN_LANGUAGE

    @property
    def prompt_description(self) -> str | None:
        """Optimized description when present, otherwise the scene description."""
        return self.optimized_description or self.scene_description


class CreationMode(str, Enum):
    AI_ORIGINAL = "ai-original"
    COMMENTARY = "commentary"
    REFERENCE = "reference"


class Project(CamelModel):
    id: str
    name: str
    creation_mode: CreationMode = CreationMode.AI_ORIGINAL
    current_step: int = 1
    style_settings: StyleSettings | None = None
    script_content: str | None = None
    segments: list[Segment] = Field(default_factory=list)
    generation_mode: GenerationMode | None = None
    aspect_ratio: AspectRatio = "16:9"
    visual_bible: VisualBible | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def advance_step(self, step: int) -> None:
        """Move the wizard forward; going backwards is rejected."""
        if step < self.current_step:
            raise ValueError(f"Cannot move from step {self.current_step} back to step {step}")
        self.current_step = step
        self.touch()

    def find_segment(self, segment_id: str) -> Segment:
        for segment in self.segments:
            if segment.id == segment_id:
                return segment
        raise KeyError(f"Segment {segment_id} not found in project {self.id}")

    @property
    def effective_mode(self) -> GenerationMode:
        return self.generation_mode or GenerationMode.TEXT_TO_IMAGE_TO_VIDEO


# ---------------------------------------------------------------------------
# Project CRUD payloads
# ---------------------------------------------------------------------------


class ProjectCreateRequest(CamelModel):
    name: str
    creation_mode: CreationMode = CreationMode.AI_ORIGINAL
    current_step: int = 1
    style_settings: StyleSettings | None = None
    script_content: str | None = None
    segments: list[Segment] | None = None
    generation_mode: GenerationMode | None = None
    aspect_ratio: AspectRatio = "16:9"


class ProjectUpdateRequest(CamelModel):
    """Partial update. ``current_step`` is only allowed to move forward."""

    name: str | None = None
    current_step: int | None = None
    style_settings: StyleSettings | None = None
    script_content: str | None = None
    segments: list[Segment] | None = None
    generation_mode: GenerationMode | None = None
    aspect_ratio: AspectRatio | None = None
    visual_bible: VisualBible | None = None


class AdvanceStepRequest(CamelModel):
    step: int


# ---------------------------------------------------------------------------
# Segment payloads
# ---------------------------------------------------------------------------


class SegmentGenerateRequest(CamelModel):
    script_content: str = Field(min_length=1)


class SegmentListResponse(CamelModel):
    segments: list[Segment]


class SegmentText(CamelModel):
    id: str
    text: str


class SegmentTranslateRequest(CamelModel):
    segments: list[SegmentText] = Field(min_length=1)


class SegmentTranslation(CamelModel):
    id: str
    translation: str


class SegmentTranslateResponse(CamelModel):
    translations: list[SegmentTranslation]


class CutRequest(CamelModel):
    offset: int


class MergeRequest(CamelModel):
    index: int
    direction: Literal["up", "down"]


class RetranslateRequest(CamelModel):
    segment_ids: list[str] | None = None


# ---------------------------------------------------------------------------
# Generation payloads
# ---------------------------------------------------------------------------


class VisualBibleRequest(CamelModel):
    full_text: str = Field(min_length=1)


class VisualBibleResponse(CamelModel):
    visual_bible: VisualBible


class DescriptionRequest(CamelModel):
    text: str = Field(min_length=1)
    translation: str | None = None
    language: str = NATIVE_LANGUAGE
    visual_bible: VisualBible


class DescriptionResponse(CamelModel):
    description: str
    description_en: str


class BatchDescriptionItem(CamelModel):
    id: str
    text: str
    translation: str | None = None
    language: str = NATIVE_LANGUAGE


class BatchDescriptionRequest(CamelModel):
    segments: list[BatchDescriptionItem]
    visual_bible: VisualBible


class BatchItemResult(CamelModel):
    id: str
    description: str | None = None
    description_en: str | None = None
    optimized_description: str | None = None
    keywords: str | None = None
    keywords_en: str | None = None
    error: str | None = None


class BatchResultsResponse(CamelModel):
    results: list[BatchItemResult]


class OptimizeRequest(CamelModel):
    description: str = Field(min_length=1)
    generation_mode: GenerationMode = GenerationMode.TEXT_TO_IMAGE_TO_VIDEO
    aspect_ratio: AspectRatio = "16:9"


class OptimizeResponse(CamelModel):
    optimized_description: str


class DescribedItem(CamelModel):
    id: str
    description: str


class BatchOptimizeRequest(CamelModel):
    segments: list[DescribedItem]
    generation_mode: GenerationMode = GenerationMode.TEXT_TO_IMAGE_TO_VIDEO
    aspect_ratio: AspectRatio = "16:9"


class KeywordRequest(CamelModel):
    description: str = Field(min_length=1)
    visual_bible: VisualBible | None = None
    style_description: str | None = None


class KeywordResponse(CamelModel):
    keywords: str
    keywords_en: str


class BatchKeywordRequest(CamelModel):
    segments: list[DescribedItem]
    visual_bible: VisualBible | None = None
    style_description: str | None = None


class ImageRequest(CamelModel):
    description: str | None = None
    prompt: str | None = None
    aspect_ratio: AspectRatio = "16:9"

    @property
    def effective_prompt(self) -> str:
        return (self.prompt or self.description or "").strip()


class ImageResponse(CamelModel):
    image_url: str


class VideoRequest(CamelModel):
    description: str | None = None
    image_url: str | None = None
    generation_mode: GenerationMode = GenerationMode.TEXT_TO_IMAGE_TO_VIDEO
    aspect_ratio: AspectRatio = "16:9"


class VideoResponse(CamelModel):
    video_url: str


class StyleAnalyzeRequest(CamelModel):
    analysis_type: Literal["character", "style", "preset"]
    image_base64: str | None = None
    preset_info: dict[str, Any] | None = None
    project_id: str | None = None


class StyleAnalyzeResponse(CamelModel):
    analysis: str


class SegmentResponse(CamelModel):
    segment: Segment


class ProjectResponse(CamelModel):
    project: Project


# ---------------------------------------------------------------------------
# Batch runs
# ---------------------------------------------------------------------------


class BatchKind(str, Enum):
    DESCRIPTIONS = "descriptions"
    OPTIMIZE = "optimize"
    KEYWORDS = "keywords"
    IMAGES = "images"
    VIDEOS = "videos"


class BatchStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    NOTHING_TO_DO = "nothing_to_do"


class BatchStartRequest(CamelModel):
    kind: BatchKind


class BatchFailure(CamelModel):
    segment_id: str
    error: str


class BatchRunSnapshot(CamelModel):
    id: str
    project_id: str | None = None
    kind: BatchKind | None = None
    status: BatchStatus
    active: bool
    current_segment_id: str | None = None
    eligible: int
    processed: int
    succeeded: int
    failures: list[BatchFailure] = Field(default_factory=list)
    summary: str | None = None
    started_at: datetime
    finished_at: datetime | None = None


class BatchRunResponse(CamelModel):
    batch: BatchRunSnapshot


class ExportManifest(CamelModel):
    project_id: str
    name: str
    generation_mode: GenerationMode
    aspect_ratio: str
    shots: list[dict[str, Any]]
    missing_videos: list[int]
    manifest_path: str


class ActivityEntry(CamelModel):
    kind: str
    project_id: str | None = None
    batch_id: str | None = None
    segment_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    at: datetime


class ActivityResponse(CamelModel):
    events: list[ActivityEntry]
