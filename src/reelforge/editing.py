"""Segment cut / merge and the background re-translation that follows them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .errors import SegmentEditError
from .instrumentation import get_logger
from .models import FOREIGN_LANGUAGE, Segment
from .providers import Translator, get_translator
from .repository import BaseProjectRepository, project_repository
from .segmentation import new_segment_id

logger = get_logger()

MergeDirection = Literal["up", "down"]


def renumber(segments: list[Segment]) -> list[Segment]:
    for index, segment in enumerate(segments):
        segment.number = index + 1
    return segments


def cut_segment(segments: list[Segment], segment_id: str, offset: int) -> tuple[list[Segment], list[Segment]]:
    """Split one segment at ``offset``.

    Returns ``(segments, halves)``. The halves get fresh ids and start over from
    plain text: no translation and no generated assets.
    """
    index = _index_of(segments, segment_id)
    original = segments[index]
    if offset <= 0 or offset >= len(original.text):
        raise SegmentEditError(f"切分位置 {offset} 超出范围，两段都不能为空")

    head = original.text[:offset].strip()
    tail = original.text[offset:].strip()
    if not head or not tail:
        raise SegmentEditError("切分后的两段都不能为空")

    halves = [
        Segment(id=new_segment_id(), number=original.number, language=original.language, text=text)
        for text in (head, tail)
    ]
    result = segments[:index] + halves + segments[index + 1 :]
    return renumber(result), halves


def merge_segments(
    segments: list[Segment], index: int, direction: MergeDirection
) -> tuple[list[Segment], Segment | None]:
    """Merge the segment at ``index`` with its neighbour.

    The earlier of the pair survives with its id and language. Its translation and
    generated assets are dropped. Merging up from the first segment or down from
    the last one returns the list unchanged and ``None``.
    """
    if index < 0 or index >= len(segments):
        raise SegmentEditError(f"片段索引 {index} 超出范围")
    if direction not in ("up", "down"):
        raise SegmentEditError(f"未知的合并方向: {direction}")

    first = index - 1 if direction == "up" else index
    if first < 0 or first + 1 >= len(segments):
        return segments, None

    earlier, later = segments[first], segments[first + 1]
    merged = Segment(
        id=earlier.id,
        number=earlier.number,
        language=earlier.language,
        text=f"{earlier.text} {later.text}",
    )
    result = segments[:first] + [merged] + segments[first + 2 :]
    return renumber(result), merged


def _index_of(segments: list[Segment], segment_id: str) -> int:
    for index, segment in enumerate(segments):
        if segment.id == segment_id:
            return index
    raise KeyError(f"Segment {segment_id} not found")


@dataclass(slots=True)
class EditResult:
    segments: list[Segment]
    needs_translation: list[str]


class SegmentEditor:
    """Commits cut/merge results immediately; translation is a separate follow-up."""

    def __init__(
        self,
        repository: BaseProjectRepository | None = None,
        translator: Translator | None = None,
    ) -> None:
        self.repository = repository or project_repository
        self.translator = translator

    async def cut(self, project_id: str, segment_id: str, offset: int) -> EditResult:
        project = await self.repository.get(project_id)
        segments, halves = cut_segment(project.segments, segment_id, offset)
        await self.repository.save_segments(project_id, segments)
        pending = [half.id for half in halves if half.language == FOREIGN_LANGUAGE]
        logger.info(f"Cut segment {segment_id} of project {project_id} at {offset}")
        return EditResult(segments=segments, needs_translation=pending)

    async def merge(self, project_id: str, index: int, direction: MergeDirection) -> EditResult:
        project = await self.repository.get(project_id)
        segments, merged = merge_segments(project.segments, index, direction)
        if merged is None:
            return EditResult(segments=segments, needs_translation=[])
        await self.repository.save_segments(project_id, segments)
        pending = [merged.id] if merged.language == FOREIGN_LANGUAGE else []
        logger.info(f"Merged segment {index} {direction} in project {project_id}")
        return EditResult(segments=segments, needs_translation=pending)

    async def retranslate(self, project_id: str, segment_ids: list[str] | None = None) -> list[Segment]:
        """Translate foreign segments and write results back by id.

        Without ids, every foreign segment lacking a translation is picked. Failures
        are logged; segments removed in the meantime are skipped.
        """
        project = await self.repository.get(project_id)
        if segment_ids is None:
            targets = [s for s in project.segments if s.language == FOREIGN_LANGUAGE and not s.translation]
        else:
            wanted = set(segment_ids)
            targets = [s for s in project.segments if s.id in wanted and s.language == FOREIGN_LANGUAGE]
        if not targets:
            return project.segments

        translator = self.translator or get_translator()
        try:
            translations = await translator.translate_many([s.text for s in targets], direction="en-zh")
        except Exception as exc:
            logger.error(f"Re-translation failed for project {project_id}: {exc}")
            return project.segments

        resolved = {
            segment.id: translation
            for segment, translation in zip(targets, translations)
            if translation
        }
        # 重新读取，期间可能又发生了切分或合并
        project = await self.repository.get(project_id)
        for segment in project.segments:
            if segment.id in resolved:
                segment.translation = resolved[segment.id]
        try:
            await self.repository.save_segments(project_id, project.segments)
        except Exception as exc:
            logger.error(f"Failed to persist translations for project {project_id}: {exc}")
        return project.segments
