import pytest
import requests

from platecheck import tasks as tasks_module
from platecheck.config import settings
from platecheck.exceptions import DispatchError
from platecheck.models import AnalysisJob
from platecheck.services import analyzer_client, job_store
from platecheck.services import dispatcher as dispatcher_module

IMAGE_META = {"filename": "meal.jpg", "content_type": "image/jpeg", "size": 3}


class DummyTask:
    def __init__(self, apply_error=None, delay_error=None):
        self.apply_error = apply_error
        self.delay_error = delay_error
        self.apply_calls = []
        self.delay_calls = []

    def apply_async(self, args, queue):
        self.apply_calls.append((args, queue))
        if self.apply_error:
            raise self.apply_error

    def delay(self, *args):
        self.delay_calls.append(args)
        if self.delay_error:
            raise self.delay_error


class DummyResponse:
    def __init__(self, status_code=200, text="ok"):
        self.status_code = status_code
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300


def test_dispatch_queues_on_analyzer_queue(monkeypatch):
    task = DummyTask()
    monkeypatch.setattr(dispatcher_module, "dispatch_analysis_task", task)

    dispatcher_module.dispatch("job-1", "user-1", "s3://bucket/key", IMAGE_META)

    assert task.apply_calls == [(("job-1", "user-1", "s3://bucket/key", IMAGE_META), "analyzer")]
    assert task.delay_calls == []


def test_dispatch_falls_back_to_delay(monkeypatch):
    task = DummyTask(apply_error=RuntimeError("no route"))
    monkeypatch.setattr(dispatcher_module, "dispatch_analysis_task", task)

    dispatcher_module.dispatch("job-1", "user-1", "s3://bucket/key", IMAGE_META)

    assert task.delay_calls == [("job-1", "user-1", "s3://bucket/key", IMAGE_META)]


def test_dispatch_swallows_broker_failure(monkeypatch):
    task = DummyTask(apply_error=ConnectionError("broker down"), delay_error=ConnectionError("broker down"))
    monkeypatch.setattr(dispatcher_module, "dispatch_analysis_task", task)

    dispatcher_module.dispatch("job-1", "user-1", "s3://bucket/key", IMAGE_META)

    assert len(task.apply_calls) == 1
    assert len(task.delay_calls) == 1


def test_send_to_analyzer_posts_image_and_ids(monkeypatch):
    calls = []

    def _post(url, **kwargs):
        calls.append((url, kwargs))
        return DummyResponse(200)

    monkeypatch.setattr(analyzer_client.requests, "post", _post)

    analyzer_client.send_to_analyzer("job-1", "user-1", b"img", IMAGE_META)

    url, kwargs = calls[0]
    assert url == settings.ANALYZER_WEBHOOK_URL
    assert kwargs["files"] == {"image": ("meal.jpg", b"img", "image/jpeg")}
    assert kwargs["data"]["analysisId"] == "job-1"
    assert kwargs["data"]["userId"] == "user-1"
    assert kwargs["data"]["source"] == settings.ANALYZER_SOURCE
    assert "timestamp" in kwargs["data"]
    assert kwargs["timeout"] == settings.DISPATCH_TIMEOUT_SECONDS


def test_send_to_analyzer_raises_on_error_status(monkeypatch):
    monkeypatch.setattr(analyzer_client.requests, "post", lambda url, **kw: DummyResponse(400, "bad image"))

    with pytest.raises(DispatchError) as exc:
        analyzer_client.send_to_analyzer("job-1", "user-1", b"img", IMAGE_META)
    assert exc.value.job_id == "job-1"
    assert "400" in exc.value.message


def test_send_to_analyzer_raises_on_network_error(monkeypatch):
    def _post(url, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(analyzer_client.requests, "post", _post)

    with pytest.raises(DispatchError):
        analyzer_client.send_to_analyzer("job-1", "user-1", b"img", IMAGE_META)


def _patch_task_io(monkeypatch, send_error=None):
    sent = []

    def _send(job_id, owner_id, image_bytes, image_meta):
        sent.append((job_id, owner_id, image_bytes))
        if send_error:
            raise send_error

    monkeypatch.setattr(tasks_module, "read_image", lambda uri: b"img")
    monkeypatch.setattr(tasks_module, "send_to_analyzer", _send)
    return sent


def test_task_sends_stored_image(monkeypatch):
    sent = _patch_task_io(monkeypatch)

    result = tasks_module.dispatch_analysis_task("job-1", "user-1", "s3://bucket/key", IMAGE_META)

    assert result == {"job_id": "job-1", "dispatched": True}
    assert sent == [("job-1", "user-1", b"img")]


def test_task_failure_is_only_logged_by_default(monkeypatch):
    _patch_task_io(monkeypatch, send_error=DispatchError("job-1"))
    marked = []

    async def _mark(job_id):
        marked.append(job_id)
        return True

    monkeypatch.setattr(tasks_module, "_mark_dispatch_failed", _mark)
    monkeypatch.setattr(settings, "DISPATCH_FAILURE_MARKS_JOB_FAILED", False)

    result = tasks_module.dispatch_analysis_task("job-1", "user-1", "s3://bucket/key", IMAGE_META)

    assert result == {"job_id": "job-1", "dispatched": False}
    assert marked == []


def test_task_failure_marks_job_when_enabled(monkeypatch):
    _patch_task_io(monkeypatch, send_error=DispatchError("job-1"))
    marked = []

    async def _mark(job_id):
        marked.append(job_id)
        return True

    monkeypatch.setattr(tasks_module, "_mark_dispatch_failed", _mark)
    monkeypatch.setattr(settings, "DISPATCH_FAILURE_MARKS_JOB_FAILED", True)

    result = tasks_module.dispatch_analysis_task("job-1", "user-1", "s3://bucket/key", IMAGE_META)

    assert result["dispatched"] is False
    assert marked == ["job-1"]


def test_task_retries_while_attempts_remain(monkeypatch):
    _patch_task_io(monkeypatch, send_error=DispatchError("job-1"))
    monkeypatch.setattr(settings, "DISPATCH_MAX_RETRIES", 2)
    retries = []

    class RetryRequested(Exception):
        pass

    def _retry(exc=None, countdown=None):
        retries.append((exc, countdown))
        return RetryRequested()

    monkeypatch.setattr(tasks_module.dispatch_analysis_task, "retry", _retry)

    with pytest.raises(RetryRequested):
        tasks_module.dispatch_analysis_task("job-1", "user-1", "s3://bucket/key", IMAGE_META)

    assert len(retries) == 1
    assert isinstance(retries[0][0], DispatchError)
    assert retries[0][1] == settings.DISPATCH_RETRY_DELAY_SECONDS


@pytest.mark.asyncio
async def test_mark_dispatch_failed_fails_processing_job(db):
    job = await job_store.create("user-1", db)

    assert await tasks_module._mark_dispatch_failed(job.id) is True

    stored = await db.get(AnalysisJob, job.id, populate_existing=True)
    assert stored.status == "failed"
    assert stored.failure_reason == tasks_module.DISPATCH_FAILED


@pytest.mark.asyncio
async def test_mark_dispatch_failed_ignores_unknown_job(db):
    assert await tasks_module._mark_dispatch_failed("missing") is False
