"""Artifact storage and project export."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .config import settings
from .models import ExportManifest, Project
from .serialization import json_serializer


class ArtifactStorage:
    """Basic local storage layer for exported artifacts."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root or settings.export_directory

    def _path(self, *parts: str) -> Path:
        path = self.root.joinpath(*parts)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def save_text(self, relative_path: str, content: str) -> str:
        path = self._path(relative_path)
        path.write_text(content, encoding="utf-8")
        return str(path)

    def save_json(self, relative_path: str, data: Any) -> str:
        content = json.dumps(data, indent=2, ensure_ascii=False, default=json_serializer)
        return self.save_text(relative_path, content)

    def export_project(self, project: Project) -> ExportManifest:
        """按镜头顺序写出导出清单，并列出尚未生成视频的镜头编号。"""
        shots = [
            {
                "number": segment.number,
                "segmentId": segment.id,
                "text": segment.text,
                "translation": segment.translation,
                "description": segment.prompt_description,
                "imageUrl": segment.image_url,
                "videoUrl": segment.video_url,
            }
            for segment in project.segments
        ]
        missing = [segment.number for segment in project.segments if not segment.video_url]
        relative_path = f"{project.id}/manifest.json"
        manifest = ExportManifest(
            project_id=project.id,
            name=project.name,
            generation_mode=project.effective_mode,
            aspect_ratio=project.aspect_ratio,
            shots=shots,
            missing_videos=missing,
            manifest_path=str(self.root / relative_path),
        )
        self.save_json(relative_path, manifest)
        return manifest
