"""Unit tests for JobQueue scheduling, retries and worker lifecycle."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from bookmind.models.job import ExtractionPayload, JobState
from bookmind.pipeline.extraction_job import ExtractionJobProcessor
from bookmind.pipeline.job_queue import JobQueue
from bookmind.pipeline.progress_tracker import ProgressTracker
from bookmind.providers.storage.sqlite_job_store import SQLiteJobStore
from bookmind.utils.errors import (
    ContentParseError,
    DocumentFetchError,
    ExtractionTimeoutError,
    JobQueueError,
)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _payload(document_id: str = "doc-1") -> ExtractionPayload:
    return ExtractionPayload(document_id=document_id, file_url=f"https://f.example.com/{document_id}")


async def _succeed(payload: ExtractionPayload, report=None) -> dict[str, Any]:
    if report is not None:
        await report(40)
    return {"word_count": 12, "page_count": 1, "size_bytes": 99, "version": 1}


@pytest.fixture
def processor() -> MagicMock:
    mock = MagicMock(spec=ExtractionJobProcessor)
    mock.run = AsyncMock(side_effect=_succeed)
    mock.on_failure = AsyncMock()
    return mock


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteJobStore:
    job_store = SQLiteJobStore(tmp_path / "jobs.db")
    await job_store.initialize()
    return job_store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


def _recorder(tracker: ProgressTracker, job_id: str) -> list[tuple[str, int, str]]:
    events: list[tuple[str, int, str]] = []

    def _listener(jid: str, state: JobState, progress: int, message: str) -> None:
        events.append((state.value, progress, message))

    tracker.register_listener(job_id, _listener)
    return events


async def _wait_for_state(queue: JobQueue, job_id: str, state: JobState) -> None:
    for _ in range(500):
        status = await queue.get_status(job_id)
        if status is not None and status.state == state:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} never reached {state.value}")


class TestConfiguration:
    def test_rejects_bad_arguments(self, store: SQLiteJobStore, processor: MagicMock) -> None:
        with pytest.raises(ValueError):
            JobQueue(store, processor, concurrency=0)
        with pytest.raises(ValueError):
            JobQueue(store, processor, max_attempts=0)

    def test_backoff_doubles(self, store: SQLiteJobStore, processor: MagicMock) -> None:
        queue = JobQueue(store, processor, backoff_base_seconds=5.0)
        assert [queue.backoff_delay(n) for n in (1, 2, 3)] == [5.0, 10.0, 20.0]

    def test_from_settings(
        self, store: SQLiteJobStore, processor: MagicMock, make_settings
    ) -> None:
        settings = make_settings(queue_concurrency=2, job_max_attempts=4, queue_rate_limit_max=7)
        queue = JobQueue.from_settings(settings, store, processor)
        assert queue.describe() == {
            "available": False,
            "workers": 2,
            "max_attempts": 4,
            "rate_limit": 7,
        }

    @pytest.mark.asyncio
    async def test_enqueue_requires_running_queue(
        self, store: SQLiteJobStore, processor: MagicMock
    ) -> None:
        queue = JobQueue(store, processor)
        with pytest.raises(JobQueueError):
            await queue.enqueue("doc-1", "https://f.example.com/doc-1")

    @pytest.mark.asyncio
    async def test_start_failure_is_queue_error(self, processor: MagicMock) -> None:
        broken = MagicMock(spec=SQLiteJobStore)
        broken.initialize = AsyncMock(side_effect=OSError("read-only file system"))
        queue = JobQueue(broken, processor)

        with pytest.raises(JobQueueError):
            await queue.start()
        assert queue.is_available() is False


class TestRunNext:
    @pytest.mark.asyncio
    async def test_success_reports_progress_in_order(
        self,
        store: SQLiteJobStore,
        processor: MagicMock,
        clock: FakeClock,
        tracker: ProgressTracker,
    ) -> None:
        queue = JobQueue(store, processor, tracker, clock=clock)
        await store.add_if_absent("doc-1", _payload(), clock())
        events = _recorder(tracker, "doc-1")

        assert await queue.run_next() is True

        status = await queue.get_status("doc-1")
        assert status.state == JobState.COMPLETED
        assert status.progress == 100
        assert status.result["word_count"] == 12
        assert events == [
            ("active", 0, "Attempt 1"),
            ("active", 40, ""),
            ("completed", 100, "Completed"),
        ]
        assert await queue.run_next() is False

    @pytest.mark.asyncio
    async def test_retryable_errors_back_off_then_fail(
        self,
        store: SQLiteJobStore,
        processor: MagicMock,
        clock: FakeClock,
        tracker: ProgressTracker,
    ) -> None:
        processor.run.side_effect = DocumentFetchError("HTTP 503", status_code=503)
        queue = JobQueue(store, processor, tracker, clock=clock, max_attempts=3)
        await store.add_if_absent("doc-1", _payload(), clock())

        assert await queue.run_next() is True
        job = await store.get("doc-1")
        assert job.state == JobState.WAITING
        assert job.run_at.timestamp() == clock.now + 5
        assert tracker.get_status("doc-1")["message"] == "Retrying in 5s: HTTP 503"

        clock.now += 4
        assert await queue.run_next() is False

        clock.now += 1
        assert await queue.run_next() is True
        job = await store.get("doc-1")
        assert job.attempts == 2
        assert job.run_at.timestamp() == clock.now + 10

        clock.now += 10
        assert await queue.run_next() is True
        status = await queue.get_status("doc-1")
        assert status.state == JobState.FAILED
        assert status.attempts == 3
        assert status.failure_reason == "HTTP 503"
        assert processor.run.await_count == 3
        processor.on_failure.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_is_retried(
        self, store: SQLiteJobStore, processor: MagicMock, clock: FakeClock
    ) -> None:
        processor.run.side_effect = [ExtractionTimeoutError("slow"), {"word_count": 12}]
        queue = JobQueue(store, processor, clock=clock)
        await store.add_if_absent("doc-1", _payload(), clock())

        await queue.run_next()
        clock.now += 5
        await queue.run_next()

        status = await queue.get_status("doc-1")
        assert status.state == JobState.COMPLETED
        assert status.attempts == 2

    @pytest.mark.asyncio
    async def test_parse_error_fails_immediately(
        self, store: SQLiteJobStore, processor: MagicMock, clock: FakeClock
    ) -> None:
        error = ContentParseError("Unsupported binary document format")
        processor.run.side_effect = error
        queue = JobQueue(store, processor, clock=clock, max_attempts=3)
        await store.add_if_absent("doc-1", _payload(), clock())

        await queue.run_next()

        status = await queue.get_status("doc-1")
        assert status.state == JobState.FAILED
        assert status.attempts == 1
        processor.on_failure.assert_awaited_once_with(_payload(), error)

    @pytest.mark.asyncio
    async def test_parse_error_retried_when_configured(
        self, store: SQLiteJobStore, processor: MagicMock, clock: FakeClock
    ) -> None:
        processor.run.side_effect = ContentParseError("corrupt")
        queue = JobQueue(store, processor, clock=clock, retry_parse_errors=True)
        await store.add_if_absent("doc-1", _payload(), clock())

        await queue.run_next()

        assert (await queue.get_status("doc-1")).state == JobState.WAITING
        processor.on_failure.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_hook_error_does_not_escape(
        self, store: SQLiteJobStore, processor: MagicMock, clock: FakeClock
    ) -> None:
        processor.run.side_effect = ContentParseError("corrupt")
        processor.on_failure.side_effect = RuntimeError("database gone")
        queue = JobQueue(store, processor, clock=clock)
        await store.add_if_absent("doc-1", _payload(), clock())

        assert await queue.run_next() is True
        assert (await queue.get_status("doc-1")).state == JobState.FAILED

    @pytest.mark.asyncio
    async def test_single_attempt_budget(
        self, store: SQLiteJobStore, processor: MagicMock, clock: FakeClock
    ) -> None:
        processor.run.side_effect = DocumentFetchError("down")
        queue = JobQueue(store, processor, clock=clock, max_attempts=1)
        await store.add_if_absent("doc-1", _payload(), clock())

        await queue.run_next()

        assert (await queue.get_status("doc-1")).state == JobState.FAILED


class TestWorkers:
    @pytest.mark.asyncio
    async def test_enqueued_job_runs_to_completion(
        self, store: SQLiteJobStore, processor: MagicMock, tracker: ProgressTracker
    ) -> None:
        queue = JobQueue(store, processor, tracker, concurrency=2, poll_interval=0.05)
        await queue.start()
        try:
            job = await queue.enqueue("doc-1", "https://f.example.com/doc-1")
            assert job.job_id == "doc-1"
            await _wait_for_state(queue, "doc-1", JobState.COMPLETED)
        finally:
            await queue.stop()

        assert queue.is_available() is False
        assert tracker.get_status("doc-1")["state"] == "completed"

    @pytest.mark.asyncio
    async def test_duplicate_enqueue_returns_existing_job(
        self, store: SQLiteJobStore, processor: MagicMock
    ) -> None:
        release = asyncio.Event()

        async def _blocked(payload: ExtractionPayload, report=None) -> dict[str, Any]:
            await release.wait()
            return await _succeed(payload, report)

        processor.run.side_effect = _blocked
        queue = JobQueue(store, processor, poll_interval=0.05)
        await queue.start()
        try:
            await queue.enqueue("doc-1", "https://f.example.com/doc-1")
            await _wait_for_state(queue, "doc-1", JobState.ACTIVE)
            again = await queue.enqueue("doc-1", "https://f.example.com/other")

            assert again.state == JobState.ACTIVE
            assert again.payload.file_url == "https://f.example.com/doc-1"

            release.set()
            await _wait_for_state(queue, "doc-1", JobState.COMPLETED)
        finally:
            await queue.stop()

        assert processor.run.await_count == 1

    @pytest.mark.asyncio
    async def test_interrupted_jobs_recovered_on_start(
        self, store: SQLiteJobStore, processor: MagicMock
    ) -> None:
        await store.add_if_absent("doc-1", _payload(), 0.0)
        await store.claim_next(0.0)

        queue = JobQueue(store, processor, poll_interval=0.05)
        await queue.start()
        try:
            await _wait_for_state(queue, "doc-1", JobState.COMPLETED)
        finally:
            await queue.stop()

        assert (await queue.get_status("doc-1")).attempts == 2

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, store: SQLiteJobStore, processor: MagicMock) -> None:
        running = 0
        peak = 0

        async def _slow(payload: ExtractionPayload, report=None) -> dict[str, Any]:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.05)
            running -= 1
            return {}

        processor.run.side_effect = _slow
        queue = JobQueue(store, processor, concurrency=2, poll_interval=0.02)
        await queue.start()
        try:
            for i in range(5):
                await queue.enqueue(f"doc-{i}", f"https://f.example.com/doc-{i}")
            for i in range(5):
                await _wait_for_state(queue, f"doc-{i}", JobState.COMPLETED)
        finally:
            await queue.stop()

        assert peak <= 2


class TestRetention:
    @pytest.mark.asyncio
    async def test_purged_jobs_leave_the_tracker(
        self,
        store: SQLiteJobStore,
        processor: MagicMock,
        clock: FakeClock,
        tracker: ProgressTracker,
    ) -> None:
        queue = JobQueue(store, processor, tracker, clock=clock, completed_keep_count=1)
        await store.add_if_absent("doc-1", _payload("doc-1"), clock())
        assert await queue.run_next() is True
        assert tracker.get_status("doc-1")["state"] == "completed"

        clock.now += 1
        await store.add_if_absent("doc-2", _payload("doc-2"), clock())
        assert await queue.run_next() is True

        assert await store.get("doc-1") is None
        assert tracker.get_status("doc-1") == {"state": "waiting", "progress": 0, "message": ""}
        assert tracker.get_status("doc-2")["state"] == "completed"
