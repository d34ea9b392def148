"""Project repository implementations."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from sqlalchemy import delete, select

from .config import settings
from .database import ProjectRecord, db_manager
from .instrumentation import get_logger
from .models import (
    CreationMode,
    GenerationMode,
    Project,
    ProjectCreateRequest,
    ProjectUpdateRequest,
    Segment,
    StyleSettings,
    VisualBible,
)

logger = get_logger()


def new_project(payload: ProjectCreateRequest) -> Project:
    return Project(
        id=str(uuid.uuid4()),
        name=payload.name,
        creation_mode=payload.creation_mode,
        current_step=payload.current_step,
        style_settings=payload.style_settings,
        script_content=payload.script_content,
        segments=payload.segments or [],
        generation_mode=payload.generation_mode,
        aspect_ratio=payload.aspect_ratio,
    )


def apply_update(project: Project, payload: ProjectUpdateRequest) -> Project:
    """Apply a partial update in place. Moving ``current_step`` backwards raises ``ValueError``."""
    changes = payload.model_dump(exclude_unset=True)
    step = changes.pop("current_step", None)
    if step is not None and step != project.current_step:
        project.advance_step(step)
    for field_name in changes:
        setattr(project, field_name, getattr(payload, field_name))
    project.touch()
    return project


class BaseProjectRepository(ABC):
    """Abstract repository contract for wizard projects."""

    @abstractmethod
    async def create(self, payload: ProjectCreateRequest) -> Project:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def get(self, project_id: str) -> Project:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, project: Project) -> Project:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def delete(self, project_id: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def list(self, limit: int = 100) -> list[Project]:  # pragma: no cover - interface
        raise NotImplementedError

    async def update(self, project_id: str, payload: ProjectUpdateRequest) -> Project:
        project = await self.get(project_id)
        apply_update(project, payload)
        return await self.upsert(project)

    async def save_segments(self, project_id: str, segments: list[Segment]) -> Project:
        """Replace the full segment list of a project."""
        project = await self.get(project_id)
        project.segments = segments
        project.touch()
        return await self.upsert(project)


class InMemoryProjectRepository(BaseProjectRepository):
    """Thread-safe in-memory repository used for tests and local development."""

    def __init__(self) -> None:
        self._items: dict[str, Project] = {}
        self._lock = Lock()

    async def create(self, payload: ProjectCreateRequest) -> Project:
        return await self.upsert(new_project(payload))

    async def get(self, project_id: str) -> Project:
        project = self._items.get(project_id)
        if not project:
            raise KeyError(f"Project {project_id} not found")
        return project

    async def upsert(self, project: Project) -> Project:
        with self._lock:
            self._items[project.id] = project
        return project

    async def delete(self, project_id: str) -> None:
        with self._lock:
            if self._items.pop(project_id, None) is None:
                raise KeyError(f"Project {project_id} not found")

    async def list(self, limit: int = 100) -> list[Project]:
        projects = sorted(self._items.values(), key=lambda p: p.updated_at, reverse=True)
        return projects[:limit]


class DatabaseProjectRepository(BaseProjectRepository):
    """SQL-backed repository that stores segments and settings as JSON columns."""

    def __init__(self) -> None:
        if db_manager.engine is None:
            raise RuntimeError("Database must be initialized for DatabaseProjectRepository")

    async def create(self, payload: ProjectCreateRequest) -> Project:
        project = new_project(payload)
        await self.upsert(project)
        return project

    async def get(self, project_id: str) -> Project:
        async with db_manager.get_session() as db:
            stmt = select(ProjectRecord).where(ProjectRecord.external_id == project_id)
            record = await db.scalar(stmt)
            if not record:
                raise KeyError(f"Project {project_id} not found")
            return self._record_to_model(record)

    async def upsert(self, project: Project) -> Project:
        async with db_manager.get_session() as db:
            stmt = select(ProjectRecord).where(ProjectRecord.external_id == project.id)
            record = await db.scalar(stmt)
            if record:
                self._update_record_from_model(record, project)
            else:
                record = ProjectRecord(
                    external_id=project.id,
                    created_at=project.created_at.replace(tzinfo=None),
                )
                self._update_record_from_model(record, project)
                db.add(record)
        return project

    async def delete(self, project_id: str) -> None:
        async with db_manager.get_session() as db:
            result = await db.execute(delete(ProjectRecord).where(ProjectRecord.external_id == project_id))
            if not result.rowcount:
                raise KeyError(f"Project {project_id} not found")

    async def list(self, limit: int = 100) -> list[Project]:
        async with db_manager.get_session() as db:
            stmt = select(ProjectRecord).order_by(ProjectRecord.updated_at.desc()).limit(limit)
            results = (await db.scalars(stmt)).all()
            return [self._record_to_model(rec) for rec in results]

    def _record_to_model(self, record: ProjectRecord) -> Project:
        return Project(
            id=record.external_id,
            name=record.name,
            creation_mode=CreationMode(record.creation_mode or CreationMode.AI_ORIGINAL.value),
            current_step=record.current_step or 1,
            style_settings=StyleSettings.model_validate(record.style_settings_json)
            if record.style_settings_json
            else None,
            script_content=record.script_content,
            segments=[Segment.model_validate(item) for item in record.segments_json or []],
            generation_mode=GenerationMode(record.generation_mode) if record.generation_mode else None,
            aspect_ratio=record.aspect_ratio or "16:9",
            visual_bible=VisualBible.model_validate(record.visual_bible_json)
            if record.visual_bible_json
            else None,
            created_at=_as_utc(record.created_at),
            updated_at=_as_utc(record.updated_at),
        )

    def _update_record_from_model(self, record: ProjectRecord, project: Project) -> None:
        record.name = project.name
        record.creation_mode = project.creation_mode.value
        record.current_step = project.current_step
        record.script_content = project.script_content
        record.generation_mode = project.generation_mode.value if project.generation_mode else None
        record.aspect_ratio = project.aspect_ratio
        record.style_settings_json = project.style_settings.model_dump(mode="json") if project.style_settings else None
        record.segments_json = [segment.model_dump(mode="json") for segment in project.segments]
        record.visual_bible_json = project.visual_bible.model_dump(mode="json") if project.visual_bible else None
        record.updated_at = project.updated_at.replace(tzinfo=None)


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class LazyProjectRepository(BaseProjectRepository):
    """
    懒加载代理 Repository，在首次使用时才选择实际实现。

    应用启动时数据库可能尚未初始化；首次调用时检查数据库状态，
    未就绪则回退到内存实现。
    """

    def __init__(self) -> None:
        self._delegate: Optional[BaseProjectRepository] = None
        self._init_lock = Lock()

    def _get_delegate(self) -> BaseProjectRepository:
        if self._delegate is not None:
            return self._delegate

        with self._init_lock:
            if self._delegate is not None:
                return self._delegate

            if settings.database_url and db_manager.engine is not None:
                self._delegate = DatabaseProjectRepository()
                logger.info("Project repository initialized with database backend")
            else:
                self._delegate = InMemoryProjectRepository()
                if settings.database_url:
                    logger.warning("Database URL configured but engine not ready, using in-memory repository")
            return self._delegate

    def set_delegate(self, delegate: BaseProjectRepository) -> None:
        """显式设置底层 repository 实现。"""
        with self._init_lock:
            old_type = type(self._delegate).__name__ if self._delegate else "None"
            self._delegate = delegate
            logger.info(f"Project repository switched from {old_type} to {type(delegate).__name__}")

    async def create(self, payload: ProjectCreateRequest) -> Project:
        return await self._get_delegate().create(payload)

    async def get(self, project_id: str) -> Project:
        return await self._get_delegate().get(project_id)

    async def upsert(self, project: Project) -> Project:
        return await self._get_delegate().upsert(project)

    async def delete(self, project_id: str) -> None:
        await self._get_delegate().delete(project_id)

    async def list(self, limit: int = 100) -> list[Project]:
        return await self._get_delegate().list(limit)


project_repository: LazyProjectRepository = LazyProjectRepository()
