import asyncio
import json
import time
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import make_project, make_segment
from reelforge.batch import BatchService
from reelforge.editing import SegmentEditor
from reelforge.errors import EmptyVendorResponseError
from reelforge.instrumentation import activity_log
from reelforge.main import app
from reelforge.models import FOREIGN_LANGUAGE, VisualBible
from reelforge.providers import MockTranslator
from reelforge.segmentation import SegmentPipeline
from reelforge.services import (
    get_asset_service,
    get_batch_service,
    get_repository,
    get_segment_editor,
    get_segment_pipeline,
    get_storage,
)
from reelforge.storage import ArtifactStorage


@pytest.fixture
def splitter():
    provider = AsyncMock()
    provider.name = "splitter"
    provider.complete.return_value = '[{"text": "The rain falls."}, {"text": "She waits."}]'
    return provider


@pytest.fixture
def client(repository, assets, splitter, tmp_path):
    batches = BatchService(repository=repository, assets=assets)
    overrides = {
        get_repository: lambda: repository,
        get_asset_service: lambda: assets,
        get_batch_service: lambda: batches,
        get_segment_editor: lambda: SegmentEditor(repository=repository, translator=MockTranslator()),
        get_segment_pipeline: lambda: SegmentPipeline(splitter=splitter, translator=MockTranslator()),
        get_storage: lambda: ArtifactStorage(root=tmp_path),
    }
    app.dependency_overrides.update(overrides)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _seed(client, repository, project):
    client.portal.call(repository.upsert, project)
    return project


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


def test_project_crud_uses_camel_case(client):
    created = client.post(
        "/api/projects",
        json={"name": "雨夜", "creationMode": "commentary", "aspectRatio": "9:16", "scriptContent": "文案"},
    )
    assert created.status_code == 201
    body = created.json()
    assert body["creationMode"] == "commentary"
    assert body["aspectRatio"] == "9:16"
    assert body["currentStep"] == 1
    project_id = body["id"]

    updated = client.patch(
        f"/api/projects/{project_id}",
        json={"generationMode": "text-to-video", "currentStep": 3},
    )
    assert updated.status_code == 200
    assert updated.json()["generationMode"] == "text-to-video"
    assert updated.json()["currentStep"] == 3

    listed = client.get("/api/projects")
    assert [p["id"] for p in listed.json()] == [project_id]

    assert client.delete(f"/api/projects/{project_id}").status_code == 204
    assert client.get(f"/api/projects/{project_id}").status_code == 404


def test_step_cannot_move_backwards(client):
    project_id = client.post("/api/projects", json={"name": "p", "currentStep": 3}).json()["id"]

    assert client.post(f"/api/projects/{project_id}/advance", json={"step": 2}).status_code == 400
    assert client.patch(f"/api/projects/{project_id}", json={"currentStep": 1}).status_code == 400

    advanced = client.post(f"/api/projects/{project_id}/advance", json={"step": 4})
    assert advanced.json()["currentStep"] == 4


def test_missing_project_is_404(client):
    assert client.get("/api/projects/nope").status_code == 404
    assert client.patch("/api/projects/nope", json={"name": "x"}).status_code == 404
    assert client.delete("/api/projects/nope").status_code == 404


# ---------------------------------------------------------------------------
# Segmentation and editing
# ---------------------------------------------------------------------------


def test_generate_segments_translates_foreign_script(client):
    response = client.post("/api/segments/generate", json={"scriptContent": "The rain falls. She waits."})

    assert response.status_code == 200
    segments = response.json()["segments"]
    assert [s["text"] for s in segments] == ["The rain falls.", "She waits."]
    assert [s["number"] for s in segments] == [1, 2]
    assert segments[0]["translation"] == "[en-zh] The rain falls."
    assert segments[0]["language"] == FOREIGN_LANGUAGE


def test_generate_segments_rejects_empty_script(client):
    assert client.post("/api/segments/generate", json={"scriptContent": ""}).status_code == 422


def test_translate_segments_by_id(client):
    response = client.post(
        "/api/segments/translate",
        json={"segments": [{"id": "a", "text": "Hello."}, {"id": "b", "text": "Bye."}]},
    )
    assert response.json()["translations"] == [
        {"id": "a", "translation": "[en-zh] Hello."},
        {"id": "b", "translation": "[en-zh] Bye."},
    ]


def test_cut_commits_and_translates_in_background(client, repository):
    _seed(client, repository, make_project([make_segment(1, "ABCDEFGH", language=FOREIGN_LANGUAGE)]))

    response = client.post("/api/projects/proj-1/segments/seg-1/cut", json={"offset": 4})

    assert response.status_code == 200
    assert [s["text"] for s in response.json()["segments"]] == ["ABCD", "EFGH"]
    stored = client.get("/api/projects/proj-1").json()
    assert [s["translation"] for s in stored["segments"]] == ["[en-zh] ABCD", "[en-zh] EFGH"]


def test_invalid_cut_is_400(client, repository):
    _seed(client, repository, make_project([make_segment(1, "ABCDEFGH")]))

    response = client.post("/api/projects/proj-1/segments/seg-1/cut", json={"offset": 8})

    assert response.status_code == 400
    assert len(client.get("/api/projects/proj-1").json()["segments"]) == 1


def test_cut_unknown_segment_is_404(client, repository):
    _seed(client, repository, make_project([make_segment(1, "ABCDEFGH")]))
    assert client.post("/api/projects/proj-1/segments/seg-9/cut", json={"offset": 2}).status_code == 404


def test_merge_down_and_boundary_noop(client, repository):
    _seed(client, repository, make_project([make_segment(1, "甲"), make_segment(2, "乙")]))

    noop = client.post("/api/projects/proj-1/segments/merge", json={"index": 1, "direction": "down"})
    assert [s["text"] for s in noop.json()["segments"]] == ["甲", "乙"]

    merged = client.post("/api/projects/proj-1/segments/merge", json={"index": 0, "direction": "down"})
    assert [s["text"] for s in merged.json()["segments"]] == ["甲 乙"]
    assert merged.json()["segments"][0]["id"] == "seg-1"


def test_merge_index_out_of_range_is_400(client, repository):
    _seed(client, repository, make_project([make_segment(1, "甲")]))
    response = client.post("/api/projects/proj-1/segments/merge", json={"index": 3, "direction": "up"})
    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def test_description_endpoint(client):
    response = client.post(
        "/api/descriptions/generate",
        json={"text": "雨夜", "visualBible": {"overallTheme": "孤独"}},
    )
    assert response.status_code == 200
    assert response.json() == {
        "description": "雨夜的街头，一个撑伞的女孩",
        "descriptionEn": "[zh-en] 雨夜的街头，一个撑伞的女孩",
    }


def test_batch_keywords_report_per_item_errors(client, describer):
    describer.complete.side_effect = ["关键词一", RuntimeError("vendor down")]

    response = client.post(
        "/api/keywords/batch-extract",
        json={"segments": [{"id": "a", "description": "甲"}, {"id": "b", "description": "乙"}]},
    )

    results = response.json()["results"]
    assert results[0]["keywords"] == "关键词一"
    assert results[1]["id"] == "b"
    assert "vendor down" in results[1]["error"]


def test_image_content_filter_is_422(client, image_provider):
    image_provider.generate_image.side_effect = EmptyVendorResponseError("gemini-image")

    response = client.post("/api/images/generate", json={"description": "雨夜"})

    assert response.status_code == 422
    assert response.json()["code"] == "content_filter"


def test_image_without_prompt_is_400(client):
    assert client.post("/api/images/generate", json={"aspectRatio": "1:1"}).status_code == 400


def test_video_needs_image_in_image_mode(client):
    response = client.post(
        "/api/videos/generate",
        json={"description": "雨夜", "generationMode": "text-to-image-to-video"},
    )
    assert response.status_code == 400


def test_segment_image_in_text_to_video_project_is_400(client, repository):
    _seed(
        client,
        repository,
        make_project([make_segment(1, "甲", scene_description="描述")], generation_mode="text-to-video"),
    )
    assert client.post("/api/projects/proj-1/segments/seg-1/image").status_code == 400


def test_style_analysis(client, repository):
    _seed(client, repository, make_project())

    analyzed = client.post(
        "/api/style/analyze",
        json={"analysisType": "style", "imageBase64": "QUJD", "projectId": "proj-1"},
    )
    assert analyzed.json() == {"analysis": "Mock style analysis"}
    stored = client.get("/api/projects/proj-1").json()
    assert stored["styleSettings"]["styleDescription"] == "Mock style analysis"

    missing_preset = client.post("/api/style/analyze", json={"analysisType": "preset"})
    assert missing_preset.status_code == 400


# ---------------------------------------------------------------------------
# Batches and export
# ---------------------------------------------------------------------------


def test_batch_with_nothing_eligible(client, repository):
    _seed(client, repository, make_project([make_segment(1, "甲", scene_description="已有")]))

    response = client.post("/api/projects/proj-1/batches", json={"kind": "descriptions"})

    assert response.status_code == 202
    assert response.json()["batch"]["status"] == "nothing_to_do"


def test_batch_runs_to_completion(client, repository):
    _seed(
        client,
        repository,
        make_project(
            [make_segment(1, "甲"), make_segment(2, "乙")],
            visual_bible=VisualBible(overall_theme="成长"),
        ),
    )

    started = client.post("/api/projects/proj-1/batches", json={"kind": "descriptions"})
    assert started.status_code == 202
    batch_id = started.json()["batch"]["id"]

    snapshot = None
    for _ in range(100):
        snapshot = client.get(f"/api/batches/{batch_id}").json()["batch"]
        if snapshot["status"] != "running":
            break
        time.sleep(0.02)

    assert snapshot["status"] == "completed"
    assert snapshot["succeeded"] == 2
    assert snapshot["summary"] == "Completed 2 of 2"
    # 已结束的记录读取一次后即被移除
    assert client.get(f"/api/batches/{batch_id}").status_code == 404
    stored = client.get("/api/projects/proj-1").json()
    assert all(s["sceneDescription"] for s in stored["segments"])



def _wait_for_batch(client, batch_id):
    snapshot = None
    for _ in range(100):
        snapshot = client.get(f"/api/batches/{batch_id}").json()["batch"]
        if snapshot["status"] != "running":
            break
        time.sleep(0.02)
    return snapshot


def test_project_writes_conflict_while_batch_runs(client, repository, describer):
    gate = asyncio.Event()

    async def slow_complete(prompt, **kwargs):
        await gate.wait()
        return '{"storyboard_description": "批量描述"}'

    describer.complete.side_effect = slow_complete
    _seed(
        client,
        repository,
        make_project([make_segment(1, "甲")], visual_bible=VisualBible(overall_theme="成长")),
    )

    started = client.post("/api/projects/proj-1/batches", json={"kind": "descriptions"})
    assert started.json()["batch"]["status"] == "running"

    assert client.patch("/api/projects/proj-1", json={"name": "改名"}).status_code == 409
    assert client.post("/api/projects/proj-1/advance", json={"step": 2}).status_code == 409
    assert client.delete("/api/projects/proj-1").status_code == 409

    client.portal.call(gate.set)
    assert _wait_for_batch(client, started.json()["batch"]["id"])["status"] == "completed"

    renamed = client.patch("/api/projects/proj-1", json={"name": "改名"})
    assert renamed.status_code == 200
    assert renamed.json()["segments"][0]["sceneDescription"] == "批量描述"


def test_project_activity_lists_batch_events(client, repository):
    activity_log.forget("proj-1")
    _seed(
        client,
        repository,
        make_project([make_segment(1, "甲")], visual_bible=VisualBible(overall_theme="成长")),
    )
    batch_id = client.post("/api/projects/proj-1/batches", json={"kind": "descriptions"}).json()["batch"]["id"]
    _wait_for_batch(client, batch_id)

    response = client.get("/api/projects/proj-1/activity", params={"batchId": batch_id})

    assert response.status_code == 200
    events = response.json()["events"]
    assert [event["kind"] for event in events] == ["batch_started", "batch_finished"]
    assert events[0]["batchId"] == batch_id
    assert events[1]["details"]["status"] == "completed"
    only_finished = client.get("/api/projects/proj-1/activity", params={"kind": "batch_finished", "limit": 1})
    assert [event["kind"] for event in only_finished.json()["events"]] == ["batch_finished"]

    assert client.delete("/api/projects/proj-1").status_code == 204
    assert activity_log.for_project("proj-1") == []
    assert client.get("/api/projects/proj-1/activity").status_code == 404

def test_unknown_batch_is_404(client):
    assert client.get("/api/batches/batch-nope").status_code == 404
    assert client.post("/api/batches/batch-nope/cancel").status_code == 404


def test_export_writes_manifest(client, repository, tmp_path):
    _seed(
        client,
        repository,
        make_project([make_segment(1, "甲", video_url="https://v/1.mp4"), make_segment(2, "乙")]),
    )

    response = client.post("/api/projects/proj-1/export")

    body = response.json()
    assert body["missingVideos"] == [2]
    manifest = json.loads(Path(body["manifestPath"]).read_text(encoding="utf-8"))
    assert manifest["projectId"] == "proj-1"
    assert [shot["videoUrl"] for shot in manifest["shots"]] == ["https://v/1.mp4", None]
    assert Path(body["manifestPath"]).parent == tmp_path / "proj-1"
