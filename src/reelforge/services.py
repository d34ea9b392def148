"""Service wiring for the HTTP layer.

Services are built on first use so that provider routing is read from the
settings in effect at that moment. Routers receive them through ``Depends``.
"""

from __future__ import annotations

from threading import Lock

from .assets import SegmentAssetService
from .batch import BatchService
from .editing import SegmentEditor
from .repository import BaseProjectRepository, project_repository
from .segmentation import SegmentPipeline
from .storage import ArtifactStorage

_lock = Lock()
_instances: dict[str, object] = {}


def _singleton(name: str, factory):
    instance = _instances.get(name)
    if instance is None:
        with _lock:
            instance = _instances.get(name)
            if instance is None:
                instance = factory()
                _instances[name] = instance
    return instance


def get_repository() -> BaseProjectRepository:
    return project_repository


def get_segment_pipeline() -> SegmentPipeline:
    return _singleton("pipeline", SegmentPipeline)


def get_segment_editor() -> SegmentEditor:
    return _singleton("editor", lambda: SegmentEditor(repository=get_repository()))


def get_asset_service() -> SegmentAssetService:
    return _singleton("assets", lambda: SegmentAssetService(repository=get_repository()))


def get_batch_service() -> BatchService:
    return _singleton(
        "batches", lambda: BatchService(repository=get_repository(), assets=get_asset_service())
    )


def get_storage() -> ArtifactStorage:
    return _singleton("storage", ArtifactStorage)


def reset_services() -> None:
    """Drop cached services so the next request rebuilds them from current settings."""
    with _lock:
        _instances.clear()
