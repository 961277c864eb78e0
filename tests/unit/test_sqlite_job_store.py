"""Unit tests for the durable SQLite job store."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from bookmind.models.job import ExtractionPayload, JobState
from bookmind.providers.storage.sqlite_job_store import SQLiteJobStore


def _payload(document_id: str = "doc-1") -> ExtractionPayload:
    return ExtractionPayload(document_id=document_id, file_url=f"https://f.example.com/{document_id}")


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteJobStore:
    job_store = SQLiteJobStore(tmp_path / "jobs.db")
    await job_store.initialize()
    return job_store


class TestAddIfAbsent:
    @pytest.mark.asyncio
    async def test_creates_waiting_job(self, store: SQLiteJobStore) -> None:
        job, created = await store.add_if_absent("doc-1", _payload(), now=100.0)
        assert created is True
        assert job.state == JobState.WAITING
        assert job.attempts == 0
        assert job.payload.document_id == "doc-1"

    @pytest.mark.asyncio
    async def test_deduplicates_non_terminal(self, store: SQLiteJobStore) -> None:
        await store.add_if_absent("doc-1", _payload(), now=100.0)
        job, created = await store.add_if_absent("doc-1", _payload(), now=200.0)
        assert created is False
        assert job.created_at.timestamp() == 100.0

    @pytest.mark.asyncio
    async def test_replaces_terminal_job(self, store: SQLiteJobStore) -> None:
        await store.add_if_absent("doc-1", _payload(), now=100.0)
        await store.claim_next(now=100.0)
        await store.fail("doc-1", "broken", now=101.0)

        job, created = await store.add_if_absent("doc-1", _payload(), now=200.0)
        assert created is True
        assert job.state == JobState.WAITING
        assert job.failure_reason is None


class TestClaiming:
    @pytest.mark.asyncio
    async def test_claims_earliest_due(self, store: SQLiteJobStore) -> None:
        await store.add_if_absent("doc-b", _payload("doc-b"), now=20.0)
        await store.add_if_absent("doc-a", _payload("doc-a"), now=10.0)

        job = await store.claim_next(now=30.0)

        assert job.job_id == "doc-a"
        assert job.state == JobState.ACTIVE
        assert job.attempts == 1

    @pytest.mark.asyncio
    async def test_future_jobs_not_claimed(self, store: SQLiteJobStore) -> None:
        await store.add_if_absent("doc-1", _payload(), now=10.0)
        await store.claim_next(now=10.0)
        await store.reschedule("doc-1", "timeout", run_at=50.0)

        assert await store.claim_next(now=40.0) is None
        assert await store.earliest_waiting() == 50.0
        job = await store.claim_next(now=50.0)
        assert job.attempts == 2
        assert job.failure_reason == "timeout"

    @pytest.mark.asyncio
    async def test_nothing_waiting(self, store: SQLiteJobStore) -> None:
        assert await store.claim_next(now=0.0) is None
        assert await store.earliest_waiting() is None


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_progress_and_complete(self, store: SQLiteJobStore) -> None:
        await store.add_if_absent("doc-1", _payload(), now=1.0)
        await store.claim_next(now=1.0)
        await store.set_progress("doc-1", 40)
        assert (await store.get("doc-1")).progress == 40

        await store.complete("doc-1", {"word_count": 10}, now=2.0)
        job = await store.get("doc-1")
        assert job.state == JobState.COMPLETED
        assert job.progress == 100
        assert job.result == {"word_count": 10}
        assert job.finished_at is not None

    @pytest.mark.asyncio
    async def test_requeue_active(self, store: SQLiteJobStore) -> None:
        await store.add_if_absent("doc-1", _payload(), now=1.0)
        await store.claim_next(now=1.0)

        assert await store.requeue_active(now=5.0) == 1
        job = await store.get("doc-1")
        assert job.state == JobState.WAITING
        assert job.run_at.timestamp() == 5.0

    @pytest.mark.asyncio
    async def test_get_unknown(self, store: SQLiteJobStore) -> None:
        assert await store.get("nope") is None


class TestPurge:
    @pytest.mark.asyncio
    async def test_purges_by_count_and_age(self, store: SQLiteJobStore) -> None:
        for i in range(4):
            job_id = f"doc-{i}"
            await store.add_if_absent(job_id, _payload(job_id), now=float(i))
            await store.claim_next(now=float(i))
            await store.complete(job_id, {}, now=float(100 + i))

        removed = await store.purge(JobState.COMPLETED, keep_count=2, max_age_seconds=1000, now=200.0)
        assert sorted(removed) == ["doc-0", "doc-1"]
        assert await store.get("doc-0") is None
        assert await store.get("doc-3") is not None

        removed = await store.purge(JobState.COMPLETED, keep_count=10, max_age_seconds=50, now=200.0)
        assert sorted(removed) == ["doc-2", "doc-3"]

    @pytest.mark.asyncio
    async def test_purge_leaves_other_states(self, store: SQLiteJobStore) -> None:
        await store.add_if_absent("doc-1", _payload(), now=0.0)
        removed = await store.purge(JobState.FAILED, keep_count=0, max_age_seconds=0, now=1e9)
        assert removed == []
        assert await store.get("doc-1") is not None
