"""JSON 工具：模型输出解码与通用序列化。"""

from __future__ import annotations

import json
import re
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?|\n?```", re.IGNORECASE)
_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)


class ModelOutputParseError(ValueError):
    """模型输出无法解析为 JSON。"""


def json_serializer(obj: Any) -> Any:
    """
    自定义 JSON 序列化器，处理常见的非标准类型。

    支持 datetime/date、UUID、Enum 以及 Pydantic 模型。
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json", by_alias=True)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps(data: Any, **kwargs) -> str:
    """将数据序列化为 JSON 字符串，自动处理特殊类型。"""
    return json.dumps(data, default=json_serializer, ensure_ascii=False, **kwargs)


def strip_code_fences(text: str) -> str:
    """去掉模型常包裹在 JSON 外面的 markdown 代码块标记。"""
    return _FENCE_PATTERN.sub("", text).strip()


def decode_model_json(text: str, *, expect: type | None = None) -> Any:
    """
    两阶段解码模型输出。

    先去掉代码块后严格解析；失败时用正则抽取第一个 JSON 对象或数组再解析。

    Args:
        text: 模型原始输出
        expect: ``dict`` 或 ``list``，限定期望的顶层类型

    Raises:
        ModelOutputParseError: 两个阶段都失败
    """
    cleaned = strip_code_fences(text or "")
    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError:
        value = _extract_structural(cleaned, expect)

    if expect is not None and not isinstance(value, expect):
        raise ModelOutputParseError(f"Expected {expect.__name__}, got {type(value).__name__}")
    return value


def _extract_structural(text: str, expect: type | None) -> Any:
    if expect is list:
        patterns = [_ARRAY_PATTERN]
    elif expect is dict:
        patterns = [_OBJECT_PATTERN]
    else:
        patterns = [_OBJECT_PATTERN, _ARRAY_PATTERN]

    for pattern in patterns:
        match = pattern.search(text)
        if not match:
            continue
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            continue
    raise ModelOutputParseError("Model output is not valid JSON")


__all__ = ["ModelOutputParseError", "decode_model_json", "dumps", "json_serializer", "strip_code_fences"]
