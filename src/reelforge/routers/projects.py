"""FastAPI router for wizard projects."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ..batch import BatchService
from ..instrumentation import activity_log, get_logger
from ..models import (
    ActivityEntry,
    ActivityResponse,
    AdvanceStepRequest,
    ExportManifest,
    Project,
    ProjectCreateRequest,
    ProjectUpdateRequest,
)
from ..repository import BaseProjectRepository
from ..services import get_batch_service, get_repository, get_storage
from ..storage import ArtifactStorage

logger = get_logger()

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.post("", response_model=Project, status_code=201)
async def create_project(
    payload: ProjectCreateRequest, repository: BaseProjectRepository = Depends(get_repository)
) -> Project:
    project = await repository.create(payload)
    logger.info(f"Created project {project.id} ({project.name})")
    return project


@router.get("", response_model=list[Project])
async def list_projects(
    limit: int = 100, repository: BaseProjectRepository = Depends(get_repository)
) -> list[Project]:
    return await repository.list(limit)


@router.get("/{project_id}", response_model=Project)
async def get_project(project_id: str, repository: BaseProjectRepository = Depends(get_repository)) -> Project:
    try:
        return await repository.get(project_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.patch("/{project_id}", response_model=Project)
async def update_project(
    project_id: str,
    payload: ProjectUpdateRequest,
    repository: BaseProjectRepository = Depends(get_repository),
    batches: BatchService = Depends(get_batch_service),
) -> Project:
    batches.ensure_idle(project_id)
    try:
        return await repository.update(project_id, payload)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    repository: BaseProjectRepository = Depends(get_repository),
    batches: BatchService = Depends(get_batch_service),
) -> Response:
    batches.ensure_idle(project_id)
    try:
        await repository.delete(project_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    activity_log.forget(project_id)
    return Response(status_code=204)


@router.post("/{project_id}/advance", response_model=Project)
async def advance_project(
    project_id: str,
    payload: AdvanceStepRequest,
    repository: BaseProjectRepository = Depends(get_repository),
    batches: BatchService = Depends(get_batch_service),
) -> Project:
    batches.ensure_idle(project_id)
    try:
        project = await repository.get(project_id)
        project.advance_step(payload.step)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return await repository.upsert(project)


@router.post("/{project_id}/export", response_model=ExportManifest)
async def export_project(
    project_id: str,
    repository: BaseProjectRepository = Depends(get_repository),
    storage: ArtifactStorage = Depends(get_storage),
) -> ExportManifest:
    project = await repository.get(project_id)
    manifest = storage.export_project(project)
    logger.info(f"Exported project {project_id} to {manifest.manifest_path}")
    return manifest


@router.get("/{project_id}/activity", response_model=ActivityResponse)
async def project_activity(
    project_id: str,
    batch_id: str | None = Query(default=None, alias="batchId"),
    kind: str | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    repository: BaseProjectRepository = Depends(get_repository),
) -> ActivityResponse:
    """项目最近的动态，可只看某个批处理。"""
    try:
        await repository.get(project_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    events = activity_log.for_project(project_id, batch_id=batch_id, kind=kind, limit=limit)
    return ActivityResponse(events=[ActivityEntry(**asdict(event)) for event in events])
