import logging

from reelforge.instrumentation import ActivityEvent, ActivityLog, activity_log, emit_event


def _event(kind, project_id="proj-1", **fields):
    return ActivityEvent(kind=kind, project_id=project_id, **fields)


def test_events_without_project_are_not_kept():
    log = ActivityLog()

    log.record(_event("segments_generated", project_id=None))

    assert log.for_project("proj-1") == []


def test_each_project_keeps_only_latest_events():
    log = ActivityLog(per_project=2)

    for index in range(3):
        log.record(_event("segment_image_generated", segment_id=f"seg-{index}"))

    assert [event.segment_id for event in log.for_project("proj-1")] == ["seg-1", "seg-2"]


def test_least_recent_project_is_evicted():
    log = ActivityLog(max_projects=2)
    log.record(_event("batch_started", project_id="proj-a"))
    log.record(_event("batch_started", project_id="proj-b"))
    log.record(_event("batch_finished", project_id="proj-a"))

    log.record(_event("batch_started", project_id="proj-c"))

    assert log.for_project("proj-b") == []
    assert [event.kind for event in log.for_project("proj-a")] == ["batch_started", "batch_finished"]


def test_filter_by_batch_kind_and_limit():
    log = ActivityLog()
    log.record(_event("batch_started", batch_id="batch-1"))
    log.record(_event("segment_image_generated", segment_id="seg-1"))
    log.record(_event("batch_finished", batch_id="batch-1"))
    log.record(_event("batch_started", batch_id="batch-2"))

    assert [event.kind for event in log.for_project("proj-1", batch_id="batch-1")] == [
        "batch_started",
        "batch_finished",
    ]
    assert [event.batch_id for event in log.for_project("proj-1", kind="batch_started")] == [
        "batch-1",
        "batch-2",
    ]
    assert [event.batch_id for event in log.for_project("proj-1", limit=1)] == ["batch-2"]
    assert log.for_project("proj-1", limit=0) == []


def test_forget_drops_project_events():
    log = ActivityLog()
    log.record(_event("batch_started"))

    log.forget("proj-1")
    log.forget("proj-unknown")

    assert log.for_project("proj-1") == []


def test_emit_event_logs_and_records(caplog):
    caplog.set_level(logging.INFO, logger="reelforge")
    activity_log.forget("proj-emit")

    event = emit_event("segment_video_generated", project_id="proj-emit", segment_id="seg-3", seconds=5)

    assert event.details == {"seconds": 5}
    assert activity_log.for_project("proj-emit") == [event]
    assert "segment_video_generated project=proj-emit" in caplog.text
