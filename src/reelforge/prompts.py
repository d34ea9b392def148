"""提示词模板。

集中存放分段、翻译、导演视觉圣经、描述词、提示词优化、关键词和风格分析
所用的系统提示与用户提示。
"""

from __future__ import annotations

import json
from typing import Any, Literal

from .models import FOREIGN_LANGUAGE, GenerationMode, VisualBible

TranslationKind = Literal["description", "keywords", "segments"]
TranslationDirection = Literal["en-zh", "zh-en"]


# ---------------------------------------------------------------------------
# 智能分段
# ---------------------------------------------------------------------------

SPLIT_SYSTEM_ZH = "你是一个专业的视频脚本分段助手。"
SPLIT_SYSTEM_EN = (
    "You are a professional video script segmentation assistant. Always keep the original English text."
)


def split_prompt(script: str, language: str) -> tuple[str, str]:
    """返回 (用户提示, 系统提示)。"""
    if language == FOREIGN_LANGUAGE:
        prompt = (
            "Please split the following English script into video shot segments. "
            "Each segment should be a complete semantic unit with moderate length (suggest 10-20 words). "
            "Keep the original English text word for word. "
            'Return a JSON array directly, each element contains only a "text" field:\n\n'
            f"{script}"
        )
        return prompt, SPLIT_SYSTEM_EN
    prompt = (
        "请将以下文案分成适合视频拍摄的镜头片段。每个片段应该是一个完整的语义单元，"
        "长度适中（建议20-50字），保持原文措辞不变。"
        '请直接返回JSON数组格式，每个元素只包含"text"字段：\n\n'
        f"{script}"
    )
    return prompt, SPLIT_SYSTEM_ZH


# ---------------------------------------------------------------------------
# 翻译
# ---------------------------------------------------------------------------


def translation_system(kind: TranslationKind, direction: TranslationDirection) -> str:
    if direction == "en-zh":
        return "你是一个专业的英中翻译助手。"
    if kind == "keywords":
        return "你是一个专业的中英翻译专家。"
    return (
        "You are a professional translator. Translate the following Chinese AI video/image "
        "generation prompt to English. Keep the technical terms and maintain the same structure "
        "and details. Output only the English translation without any additional explanation."
    )


def translation_prompt(text: str, kind: TranslationKind, direction: TranslationDirection) -> str:
    if direction == "en-zh":
        return f"请将以下英文文本翻译成中文，保持原意和专业性。只输出译文：\n\n{text}"
    if kind == "keywords":
        return (
            "请将以下中文关键词翻译为英文，保持逗号分隔格式。只输出翻译后的英文关键词，不要任何解释。\n\n"
            f"中文关键词：\n{text}"
        )
    return f"Translate this Chinese prompt to English:\n\n{text}"


def batch_translation_prompt(texts: list[str], direction: TranslationDirection) -> str:
    payload = json.dumps(texts, ensure_ascii=False)
    if direction == "en-zh":
        return (
            "请将以下英文文本片段逐条翻译成中文，保持原意和专业性。"
            '直接返回与输入等长、顺序一致的JSON数组，每个元素包含"translation"字段：\n\n'
            f"{payload}"
        )
    return (
        "Translate each of the following Chinese fragments to English. "
        'Return a JSON array of the same length and order, each element containing a "translation" field:\n\n'
        f"{payload}"
    )


# ---------------------------------------------------------------------------
# 导演视觉圣经
# ---------------------------------------------------------------------------

VISUAL_BIBLE_SYSTEM = (
    "你是一位经验丰富的电影导演和视觉总监。你的任务是通读整篇文案，为整部短片制定统一的视觉规范，"
    "确保之后每一个镜头在风格、色调和核心元素上保持一致。"
)


def visual_bible_prompt(full_text: str) -> str:
    return (
        "请阅读以下完整文案，输出本片的《导演视觉圣经》。只返回JSON对象，包含以下字段：\n"
        '- "overall_theme": 整体主题与视觉风格\n'
        '- "emotional_arc": 情感弧线（开端、发展、高潮、结尾的情绪变化）\n'
        '- "visual_metaphor": 贯穿全片的视觉隐喻\n'
        '- "lighting_and_color": 光影与色彩方案\n'
        '- "core_anchors": 核心元素锚点（人物外观、关键物体、场景的固定特征）\n\n'
        f"文案：\n{full_text}"
    )


# ---------------------------------------------------------------------------
# 分镜描述词
# ---------------------------------------------------------------------------

DESCRIPTION_SYSTEM = (
    "你是一名专业的分镜师。你根据导演视觉圣经，把一句文案转化为一个静态画面的中文描述，"
    "描述需包含主体、动作、环境、构图、光线和色彩，并严格遵守视觉圣经中的核心元素锚点。"
)


def description_prompt(
    text: str,
    *,
    visual_bible: VisualBible,
    translation: str | None = None,
    language: str | None = None,
) -> str:
    source = text
    if language == FOREIGN_LANGUAGE and translation:
        source = f"{text}\n（中文译文：{translation}）"
    return (
        f"【导演视觉圣经】\n{visual_bible.as_prompt_block()}\n\n"
        f"【镜头文案】\n{source}\n\n"
        '请只返回JSON对象：{"storyboard_description": "<中文画面描述>"}'
    )


# ---------------------------------------------------------------------------
# 提示词优化
# ---------------------------------------------------------------------------


def optimize_system(mode: GenerationMode, aspect_ratio: str) -> str:
    if mode == GenerationMode.TEXT_TO_VIDEO:
        return (
            "你是AI视频生成提示词专家。请把画面描述改写为适合文生视频模型的提示词："
            "明确镜头运动（推、拉、摇、移、跟）、主体动作的时间推进和节奏，"
            f"画幅比例为 {aspect_ratio}，构图需适配该比例。只输出优化后的提示词。"
        )
    return (
        "你是AI图像生成提示词专家。请把画面描述改写为适合文生图模型的提示词："
        "强调静态构图、主体位置、景别、光线方向与质感、色彩层次，"
        f"画幅比例为 {aspect_ratio}，构图需适配该比例。只输出优化后的提示词。"
    )


def optimize_prompt(description: str) -> str:
    return f"原始画面描述：\n{description}"


# ---------------------------------------------------------------------------
# 关键词
# ---------------------------------------------------------------------------

KEYWORDS_SYSTEM = "你是一名AI绘画关键词专家。"


def keywords_prompt(
    description: str,
    *,
    visual_bible: VisualBible | None = None,
    style_description: str | None = None,
) -> str:
    parts = []
    if visual_bible is not None:
        parts.append(f"【导演视觉圣经】\n{visual_bible.as_prompt_block()}")
    if style_description:
        parts.append(f"【风格参考】\n{style_description}")
    parts.append(f"【画面描述】\n{description}")
    parts.append("请提取10-20个中文关键词，按重要性排序，用逗号分隔。只输出关键词。")
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# 风格分析
# ---------------------------------------------------------------------------

STYLE_INSTRUCTIONS: dict[str, str] = {
    "character": "请详细描述图中人物的外貌特征：性别、年龄、发型发色、五官、体型、服装和配饰。用于保持角色一致性。",
    "style": "请分析这张图片的艺术风格：画风、色彩倾向、光影处理、笔触与质感、构图特点。用于生成风格一致的画面。",
    "preset": "请根据以下预设风格信息，写出一段可直接用于AI绘画的风格描述：",
}


def preset_prompt(preset_info: dict[str, Any]) -> str:
    return f"{STYLE_INSTRUCTIONS['preset']}\n\n{json.dumps(preset_info, ensure_ascii=False)}"
