from __future__ import annotations

import asyncio
import json

import pytest

from video_relay.artifacts.downloader import ArtifactDownloader
from video_relay.callbacks.models import (
    CallbackData,
    CallbackOutcome,
    decode_result_url,
    normalize_progress,
    parse_event,
)
from video_relay.callbacks.service import MISSING_RESULT_URL_ERROR, CallbackReconciler
from video_relay.tasks.models import TaskMode, TaskStatus, VideoTask

RESULT_URL = "https://cdn.test/result.mp4"


@pytest.fixture()
def downloader(store, provider, tmp_path) -> ArtifactDownloader:
    return ArtifactDownloader(
        store,
        provider,
        files_dir=tmp_path / "files",
        public_url_for=lambda local_task_id: f"https://relay.test/files/{local_task_id}.mp4",
    )


@pytest.fixture()
def reconciler(store, downloader) -> CallbackReconciler:
    return CallbackReconciler(store, downloader)


def _event(state=None, task_id="prov-1", **data) -> dict:
    payload = {"taskId": task_id}
    if state is not None:
        payload["state"] = state
    payload.update(data)
    return {"code": 200, "data": payload}


def _success(url: str = RESULT_URL) -> dict:
    return _event("success", resultJson=json.dumps({"resultUrls": [url]}))


async def _seed(store, status: TaskStatus = TaskStatus.QUEUED, **kwargs) -> VideoTask:
    task = VideoTask(
        local_task_id="task_1",
        provider_task_id="prov-1",
        mode=TaskMode.TEXT_TO_VIDEO,
        prompt="a sunset",
        status=status,
        **kwargs,
    )
    await store.put(task, refresh_recent=True)
    return task


# ============================================================================
# Decoding
# ============================================================================

@pytest.mark.parametrize(
    "raw,expected",
    [
        (json.dumps({"resultUrls": ["", RESULT_URL, "https://cdn.test/other.mp4"]}), RESULT_URL),
        (json.dumps({"resultUrls": RESULT_URL}), RESULT_URL),
        (json.dumps({"resultUrls": [], "resultUrl": RESULT_URL}), RESULT_URL),
        (json.dumps({"resultUrl": RESULT_URL}), RESULT_URL),
        ({"resultUrls": [RESULT_URL]}, RESULT_URL),
        ([RESULT_URL], RESULT_URL),
        (json.dumps([RESULT_URL]), RESULT_URL),
        (json.dumps(RESULT_URL), RESULT_URL),
        (RESULT_URL, RESULT_URL),
        (json.dumps({"resultUrls": []}), None),
        ("not json at all", None),
        ("", None),
        (None, None),
        (42, None),
    ],
)
def test_decode_result_url(raw, expected):
    assert decode_result_url(raw) == expected


@pytest.mark.parametrize(
    "raw,expected",
    [
        (0.42, 42.0),
        ("0.5", 50.0),
        (42, 42.0),
        ("73", 73.0),
        (0, 0.0),
        (1, 1.0),
        (150, 100.0),
        (-5, 0.0),
        ("abc", None),
        (None, None),
        (True, None),
    ],
)
def test_normalize_progress(raw, expected):
    result = normalize_progress(raw)
    if expected is None:
        assert result is None
    else:
        assert result == pytest.approx(expected)


@pytest.mark.parametrize(
    "data,expected",
    [
        ({"failMsg": "content policy", "msg": "m", "failCode": "E1"}, "content policy"),
        ({"msg": "m", "failCode": "E1"}, "m"),
        ({"failCode": "E1"}, "E1"),
        ({"failMsg": ""}, "Provider task failed"),
        ({}, "Provider task failed"),
    ],
)
def test_fail_message_precedence(data, expected):
    assert CallbackData.model_validate(data).fail_message() == expected


def test_parse_event_rejects_non_objects():
    assert parse_event([1, 2]) is None
    assert parse_event({"data": "nope"}) is None
    assert parse_event({"data": {"taskId": 7}}).data.provider_task_id == "7"


def test_unknown_provider_state_is_not_a_status():
    assert CallbackData.model_validate({"state": "exploded"}).status is None
    assert CallbackData.model_validate({"state": "GENERATING"}).status is TaskStatus.RUNNING
    assert CallbackData.model_validate({"state": "waiting"}).status is TaskStatus.QUEUED


# ============================================================================
# Reconciliation
# ============================================================================

@pytest.mark.parametrize("payload", [None, "text", [], {"data": None}, {"data": {"state": "success"}}])
def test_malformed_events_are_dropped(reconciler, payload):
    assert asyncio.run(reconciler.handle(payload)) is CallbackOutcome.MALFORMED


def test_unknown_task_changes_nothing(reconciler, store):
    async def scenario():
        outcome = await reconciler.handle(_event("running", task_id="prov-unknown"))
        return outcome, await store.list_recent(10)

    outcome, listed = asyncio.run(scenario())
    assert outcome is CallbackOutcome.UNKNOWN_TASK
    assert listed == []


def test_mapping_without_record_is_missing_task(reconciler, store):
    async def scenario():
        await _seed(store)
        store._tasks.pop("task_1")
        return await reconciler.handle(_event("running"))

    assert asyncio.run(scenario()) is CallbackOutcome.MISSING_TASK


def test_running_event_updates_progress(reconciler, store):
    async def scenario():
        await _seed(store)
        outcome = await reconciler.handle(_event("generating", progress=0.35))
        return outcome, await store.get("task_1")

    outcome, task = asyncio.run(scenario())
    assert outcome is CallbackOutcome.UPDATED
    assert task.status is TaskStatus.RUNNING
    assert task.progress == pytest.approx(35)


def test_progress_only_event_keeps_status(reconciler, store):
    async def scenario():
        await _seed(store, status=TaskStatus.RUNNING)
        await reconciler.handle(_event(progress=60))
        return await store.get("task_1")

    task = asyncio.run(scenario())
    assert task.status is TaskStatus.RUNNING
    assert task.progress == 60


def test_success_rehosts_the_video(reconciler, store, downloader, fake_provider):
    fake_provider.files[RESULT_URL] = b"mp4"

    async def scenario():
        await _seed(store, status=TaskStatus.RUNNING)
        outcome = await reconciler.handle(_success())
        before = await store.get("task_1")
        await downloader.join()
        return outcome, before, await store.get("task_1")

    outcome, before, after = asyncio.run(scenario())

    assert outcome is CallbackOutcome.UPDATED
    assert before.status is TaskStatus.SUCCESS
    assert before.progress == 100
    assert before.origin_video_url == RESULT_URL
    assert after.video_url == "https://relay.test/files/task_1.mp4"
    assert after.error is None
    assert downloader.artifact_path("task_1").read_bytes() == b"mp4"


def test_duplicate_success_is_a_no_op(reconciler, store, downloader, fake_provider):
    fake_provider.files[RESULT_URL] = b"mp4"

    async def scenario():
        await _seed(store)
        await reconciler.handle(_success())
        await downloader.join()
        settled = await store.get("task_1")
        outcome = await reconciler.handle(_success("https://cdn.test/other.mp4"))
        pending = downloader.pending
        return settled, outcome, pending, await store.get("task_1")

    settled, outcome, pending, after = asyncio.run(scenario())

    assert outcome is CallbackOutcome.TERMINAL_IGNORED
    assert pending == 0
    assert after.revision == settled.revision
    assert after.origin_video_url == RESULT_URL


def test_late_running_event_after_success_is_ignored(reconciler, store, downloader, fake_provider):
    fake_provider.files[RESULT_URL] = b"mp4"

    async def scenario():
        await _seed(store)
        await reconciler.handle(_success())
        await downloader.join()
        outcome = await reconciler.handle(_event("running", progress=10))
        return outcome, await store.get("task_1")

    outcome, task = asyncio.run(scenario())
    assert outcome is CallbackOutcome.TERMINAL_IGNORED
    assert task.status is TaskStatus.SUCCESS
    assert task.progress == 100


def test_stale_queued_event_does_not_regress(reconciler, store):
    async def scenario():
        await _seed(store, status=TaskStatus.RUNNING, progress=40)
        outcome = await reconciler.handle(_event("queuing", progress=5))
        return outcome, await store.get("task_1")

    outcome, task = asyncio.run(scenario())
    assert outcome is CallbackOutcome.STALE_IGNORED
    assert task.status is TaskStatus.RUNNING
    assert task.progress == 40


def test_fail_event_records_message(reconciler, store):
    async def scenario():
        await _seed(store, status=TaskStatus.RUNNING)
        outcome = await reconciler.handle(_event("fail", msg="generic", failCode="E42"))
        return outcome, await store.get("task_1")

    outcome, task = asyncio.run(scenario())
    assert outcome is CallbackOutcome.UPDATED
    assert task.status is TaskStatus.FAIL
    assert task.error == "generic"


def test_success_without_url_sets_error(reconciler, store, downloader):
    async def scenario():
        await _seed(store)
        outcome = await reconciler.handle(_event("success", resultJson="{}"))
        pending = downloader.pending
        return outcome, pending, await store.get("task_1")

    outcome, pending, task = asyncio.run(scenario())
    assert outcome is CallbackOutcome.UPDATED
    assert pending == 0
    assert task.status is TaskStatus.SUCCESS
    assert task.origin_video_url is None
    assert task.error == MISSING_RESULT_URL_ERROR


def test_download_failure_is_a_soft_error(reconciler, store, downloader):
    async def scenario():
        await _seed(store)
        await reconciler.handle(_success("https://cdn.test/gone.mp4"))
        await downloader.join()
        return await store.get("task_1")

    task = asyncio.run(scenario())
    assert task.status is TaskStatus.SUCCESS
    assert task.origin_video_url == "https://cdn.test/gone.mp4"
    assert task.video_url is None
    assert task.error.startswith("Failed to download video:")
    assert not downloader.artifact_path("task_1").exists()


def test_task_deleted_during_download_drops_file(store, provider, downloader, fake_provider):
    fake_provider.files[RESULT_URL] = b"mp4"

    async def scenario():
        await _seed(store)
        await store.delete("task_1")
        downloader.schedule("task_1", RESULT_URL)
        await downloader.join()

    asyncio.run(scenario())
    assert not downloader.artifact_path("task_1").exists()
