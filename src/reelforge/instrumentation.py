"""Logging setup and the per-project activity log."""

from __future__ import annotations

from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any

import logging

from .config import settings


def configure_logging(level: str = "INFO") -> None:
    """Configure standard logging; can be swapped for OTLP later."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


configure_logging(settings.log_level)


def get_logger() -> logging.Logger:
    return logging.getLogger("reelforge")


@dataclass(slots=True)
class ActivityEvent:
    """一条项目动态：单片段素材生成、批处理开始与结束等。"""

    kind: str
    project_id: str | None = None
    batch_id: str | None = None
    segment_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ActivityLog:
    """每个项目保留最近的若干条动态，供前端展示进度历史。

    只记录带 ``project_id`` 的事件；项目数超过上限时淘汰最久未活动的项目。
    """

    def __init__(self, per_project: int = 200, max_projects: int = 500) -> None:
        self.per_project = per_project
        self.max_projects = max_projects
        self._projects: OrderedDict[str, deque[ActivityEvent]] = OrderedDict()
        self._lock = Lock()

    def record(self, event: ActivityEvent) -> None:
        if event.project_id is None:
            return
        with self._lock:
            events = self._projects.get(event.project_id)
            if events is None:
                events = deque(maxlen=self.per_project)
                self._projects[event.project_id] = events
            events.append(event)
            self._projects.move_to_end(event.project_id)
            while len(self._projects) > self.max_projects:
                self._projects.popitem(last=False)

    def for_project(
        self,
        project_id: str,
        *,
        batch_id: str | None = None,
        kind: str | None = None,
        limit: int = 50,
    ) -> list[ActivityEvent]:
        """按时间顺序返回项目最近的动态，可按批处理或事件类型过滤。"""
        with self._lock:
            events = list(self._projects.get(project_id, ()))

        if batch_id:
            events = [evt for evt in events if evt.batch_id == batch_id]
        if kind:
            events = [evt for evt in events if evt.kind == kind]
        return events[-limit:] if limit > 0 else []

    def forget(self, project_id: str) -> None:
        with self._lock:
            self._projects.pop(project_id, None)


activity_log = ActivityLog(per_project=settings.activity_log_size)


def emit_event(
    kind: str,
    *,
    project_id: str | None = None,
    batch_id: str | None = None,
    segment_id: str | None = None,
    **details: Any,
) -> ActivityEvent:
    """Log an activity event and keep it in the project's activity log."""
    event = ActivityEvent(
        kind=kind, project_id=project_id, batch_id=batch_id, segment_id=segment_id, details=details
    )
    get_logger().info(
        "%s project=%s batch=%s segment=%s %s", kind, project_id, batch_id, segment_id, details
    )
    activity_log.record(event)
    return event
