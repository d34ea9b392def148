"""批量生成：按顺序处理项目中所有符合条件的片段。

- 单个片段失败只记录，不中断批处理
- 取消是协作式的，只在两个片段之间检查
- 批处理结束（完成或停止）后统一保存一次
"""

from __future__ import annotations

import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from .assets import SegmentAssetService, video_ready
from .config import settings
from .errors import BatchConflictError
from .instrumentation import emit_event, get_logger
from .models import (
    BatchFailure,
    BatchKind,
    BatchRunSnapshot,
    BatchStatus,
    GenerationMode,
    Project,
    Segment,
)
from .repository import BaseProjectRepository, project_repository

logger = get_logger()

Eligibility = Callable[[Segment], bool]
SegmentOperation = Callable[[Segment], Awaitable[object]]
PersistSegments = Callable[[list[Segment]], Awaitable[object]]


class CancellationToken:
    """由用户设置、由编排器在片段之间轮询的取消标记。"""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False


@dataclass
class BatchRun:
    project_id: str | None = None
    kind: BatchKind | None = None
    id: str = field(default_factory=lambda: f"batch-{uuid.uuid4().hex[:12]}")
    token: CancellationToken = field(default_factory=CancellationToken)
    status: BatchStatus = BatchStatus.RUNNING
    active: bool = False
    current_segment_id: str | None = None
    in_flight: set[str] = field(default_factory=set)
    touched: set[str] = field(default_factory=set)
    eligible: int = 0
    processed: int = 0
    succeeded: int = 0
    failures: list[BatchFailure] = field(default_factory=list)
    summary: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def finished(self) -> bool:
        return self.finished_at is not None

    def snapshot(self) -> BatchRunSnapshot:
        return BatchRunSnapshot(
            id=self.id,
            project_id=self.project_id,
            kind=self.kind,
            status=self.status,
            active=self.active,
            current_segment_id=self.current_segment_id,
            eligible=self.eligible,
            processed=self.processed,
            succeeded=self.succeeded,
            failures=list(self.failures),
            summary=self.summary,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


def eligibility_for(kind: BatchKind, mode: GenerationMode) -> Eligibility:
    """每种批处理只挑选尚未生成对应产物、且前置条件已满足的片段。"""
    if kind == BatchKind.DESCRIPTIONS:
        return lambda s: not s.scene_description
    if kind == BatchKind.OPTIMIZE:
        return lambda s: bool(s.scene_description) and not s.optimized_description
    if kind == BatchKind.KEYWORDS:
        return lambda s: bool(s.scene_description) and not s.keywords
    if kind == BatchKind.IMAGES:
        return lambda s: bool(s.prompt_description) and not s.image_url
    if kind == BatchKind.VIDEOS:
        return lambda s: video_ready(s, mode) and not s.video_url
    raise ValueError(f"Unknown batch kind '{kind}'")


class BatchOrchestrator:
    """顺序执行单片段操作，任一时刻最多一个供应商调用在进行。"""

    async def run(
        self,
        segments: list[Segment],
        eligible: Eligibility,
        operation: SegmentOperation,
        *,
        token: CancellationToken,
        run: BatchRun | None = None,
        persist: PersistSegments | None = None,
    ) -> BatchRun:
        run = run or BatchRun()
        run.token = token
        targets = [segment for segment in segments if eligible(segment)]
        run.eligible = len(targets)

        if not targets:
            run.status = BatchStatus.NOTHING_TO_DO
            run.summary = "Nothing to do"
            run.finished_at = datetime.now(timezone.utc)
            return run

        run.active = True
        run.status = BatchStatus.RUNNING
        run.succeeded = 0
        run.in_flight = {segment.id for segment in targets}
        token.reset()

        for segment in targets:
            if token.cancelled:
                logger.info(f"Batch {run.id} cancelled after {run.processed} item(s)")
                break

            run.current_segment_id = segment.id
            try:
                await operation(segment)
                run.succeeded += 1
                run.touched.add(segment.id)
            except Exception as exc:
                logger.error(f"Batch {run.id}: segment {segment.id} failed: {exc}")
                run.failures.append(BatchFailure(segment_id=segment.id, error=str(exc)))
            finally:
                run.processed += 1
                run.in_flight.discard(segment.id)

        if persist is not None:
            try:
                await persist(segments)
            except Exception as exc:
                logger.error(f"Batch {run.id}: failed to persist segments: {exc}")

        stopped = run.processed < len(targets)
        run.current_segment_id = None
        run.in_flight.clear()
        run.active = False
        run.finished_at = datetime.now(timezone.utc)
        if stopped:
            run.status = BatchStatus.STOPPED
            run.summary = f"Stopped after {run.succeeded} of {run.eligible}"
        else:
            run.status = BatchStatus.COMPLETED
            run.summary = f"Completed {run.succeeded} of {run.eligible}"
        if run.failures:
            run.summary += f", {len(run.failures)} failed"
        return run


class BatchService:
    """把编排器绑定到项目上，以 asyncio 任务运行批处理。

    同一项目同时只允许一个批处理；批处理进行中拒绝单片段操作。
    """

    def __init__(
        self,
        repository: BaseProjectRepository | None = None,
        assets: SegmentAssetService | None = None,
        orchestrator: BatchOrchestrator | None = None,
        registry_limit: int | None = None,
    ) -> None:
        self.repository = repository or project_repository
        self._assets = assets
        self.orchestrator = orchestrator or BatchOrchestrator()
        self.registry_limit = registry_limit or settings.batch_registry_limit
        self._runs: OrderedDict[str, BatchRun] = OrderedDict()
        self._active: dict[str, str] = {}

    @property
    def assets(self) -> SegmentAssetService:
        if self._assets is None:
            self._assets = SegmentAssetService(repository=self.repository)
        return self._assets

    def ensure_idle(self, project_id: str) -> None:
        batch_id = self._active.get(project_id)
        if batch_id is not None:
            raise BatchConflictError(f"Project {project_id} has an active batch {batch_id}")

    async def start(self, project_id: str, kind: BatchKind) -> BatchRun:
        self.ensure_idle(project_id)
        project = await self.repository.get(project_id)

        run = BatchRun(project_id=project_id, kind=kind)
        eligible = eligibility_for(kind, project.effective_mode)
        run.eligible = sum(1 for segment in project.segments if eligible(segment))
        run.active = run.eligible > 0
        self._register(run)

        if run.eligible == 0:
            await self.orchestrator.run(
                project.segments, eligible, self._operation(project, kind), token=run.token, run=run
            )
            return run

        self._active[project_id] = run.id
        run.task = asyncio.create_task(self._execute(project, kind, run))
        emit_event(
            "batch_started", project_id=project_id, batch_id=run.id, batch_kind=kind.value, eligible=run.eligible
        )
        return run

    def get(self, batch_id: str) -> BatchRun:
        """读取批处理状态；已结束的记录被读取一次后移出登记表。"""
        run = self._runs.get(batch_id)
        if run is None:
            raise KeyError(f"Batch {batch_id} not found")
        if run.finished:
            self._runs.pop(batch_id, None)
        return run

    def cancel(self, batch_id: str) -> BatchRun:
        run = self._runs.get(batch_id)
        if run is None:
            raise KeyError(f"Batch {batch_id} not found")
        if not run.finished:
            run.token.cancel()
            logger.info(f"Cancellation requested for batch {batch_id}")
        return run

    async def wait(self, batch_id: str) -> BatchRun:
        run = self._runs.get(batch_id)
        if run is None:
            raise KeyError(f"Batch {batch_id} not found")
        if run.task is not None:
            await run.task
        return run

    async def shutdown(self) -> None:
        tasks = [run.task for run in self._runs.values() if run.task and not run.task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _operation(self, project: Project, kind: BatchKind) -> SegmentOperation:
        step = self.assets.step_for(kind)
        return lambda segment: step(project, segment)

    async def _execute(self, project: Project, kind: BatchKind, run: BatchRun) -> None:
        async def persist(segments: list[Segment]) -> None:
            # 以最新存储为准，只替换本批次成功处理过的片段
            updated = {segment.id: segment for segment in segments if segment.id in run.touched}
            latest = await self.repository.get(project.id)
            latest.segments = [
                updated[segment.id].model_copy(update={"translation": segment.translation})
                if segment.id in updated
                else segment
                for segment in latest.segments
            ]
            latest.touch()
            await self.repository.upsert(latest)

        try:
            await self.orchestrator.run(
                project.segments,
                eligibility_for(kind, project.effective_mode),
                self._operation(project, kind),
                token=run.token,
                run=run,
                persist=persist,
            )
        finally:
            self._active.pop(run.project_id, None)
            run.active = False
            if run.finished_at is None:
                run.finished_at = datetime.now(timezone.utc)
                run.status = BatchStatus.STOPPED
                run.summary = f"Stopped after {run.succeeded} of {run.eligible}"
            emit_event(
                "batch_finished",
                project_id=run.project_id,
                batch_id=run.id,
                status=run.status.value,
                succeeded=run.succeeded,
                failed=len(run.failures),
            )

    def _register(self, run: BatchRun) -> None:
        self._runs[run.id] = run
        while len(self._runs) > self.registry_limit:
            evictable = next((key for key, item in self._runs.items() if not item.active), None)
            if evictable is None:
                break
            self._runs.pop(evictable)