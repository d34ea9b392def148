"""文案智能分段。

流程：语言检测 -> 模型分段 -> 两阶段 JSON 解码（失败时按标点切分）
-> 英文文案整体翻译为中文 -> 分配 id 与编号。
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Any

from .instrumentation import emit_event, get_logger
from .models import FOREIGN_LANGUAGE, NATIVE_LANGUAGE, Segment
from .prompts import split_prompt
from .providers import TextProvider, Translator, get_text_provider, get_translator
from .serialization import ModelOutputParseError, decode_model_json

logger = get_logger()

_CJK_PATTERN = re.compile(r"[一-龥]")
_NATIVE_BREAKS = re.compile(r"(?<=[。！？])|\n+")
_FOREIGN_BREAKS = re.compile(r"(?<=[.!?])\s*|\n+")


def new_segment_id() -> str:
    return f"seg-{uuid.uuid4().hex}"


def detect_language(text: str) -> str:
    """含有中文字符即视为中文。"""
    return NATIVE_LANGUAGE if _CJK_PATTERN.search(text or "") else FOREIGN_LANGUAGE


def fallback_split(script: str, language: str) -> list[str]:
    """按句末标点和换行切分，丢弃空片段。"""
    pattern = _FOREIGN_BREAKS if language == FOREIGN_LANGUAGE else _NATIVE_BREAKS
    return [fragment.strip() for fragment in pattern.split(script) if fragment and fragment.strip()]


def parse_split_reply(reply: str) -> list[str]:
    """Decode the model's segmentation reply into non-empty text fragments.

    Items may be ``{"text": ...}`` objects or bare strings.
    """
    items = decode_model_json(reply, expect=list)
    fragments: list[str] = []
    for item in items:
        text: Any = item.get("text") if isinstance(item, dict) else item
        if isinstance(text, str) and text.strip():
            fragments.append(text.strip())
    return fragments


def build_segments(
    fragments: list[str], language: str, translations: list[str] | None = None
) -> list[Segment]:
    segments = []
    for index, text in enumerate(fragments):
        translation = None
        if translations and index < len(translations) and translations[index]:
            translation = translations[index]
        segments.append(
            Segment(
                id=new_segment_id(),
                number=index + 1,
                language=language,
                text=text,
                translation=translation,
            )
        )
    return segments


@dataclass(slots=True)
class SegmentPipeline:
    """把一整段文案切成镜头片段。只有分段调用失败才会抛出。"""

    splitter: TextProvider | None = None
    translator: Translator | None = None

    def __post_init__(self) -> None:
        if self.splitter is None:
            self.splitter = get_text_provider()
        if self.translator is None:
            self.translator = get_translator()

    async def generate(self, script: str) -> list[Segment]:
        script = script.strip()
        if not script:
            return []

        language = detect_language(script)
        prompt, system_prompt = split_prompt(script, language)
        reply = await self.splitter.complete(prompt, system_prompt=system_prompt, temperature=0.3)

        try:
            fragments = parse_split_reply(reply)
        except ModelOutputParseError as exc:
            logger.warning(f"Segmentation reply is not JSON ({exc}), splitting on punctuation")
            fragments = []
        if not fragments:
            fragments = fallback_split(script, language)

        translations = None
        if language == FOREIGN_LANGUAGE:
            translations = await self.translate_fragments(fragments)

        segments = build_segments(fragments, language, translations)
        emit_event("segments_generated", language=language, count=len(segments), translated=bool(translations))
        return segments

    async def translate_fragments(self, fragments: list[str]) -> list[str] | None:
        """英文片段一次性翻译成中文；失败时返回 None，不影响分段结果。"""
        try:
            return await self.translator.translate_many(fragments, direction="en-zh")
        except Exception as exc:
            logger.error(f"Segment translation failed, keeping segments untranslated: {exc}")
            return None
