"""Durable background job queue for document extraction.

:class:`JobQueue` is an explicit service object: the application builds
one, calls :meth:`JobQueue.start` during startup and :meth:`JobQueue.stop`
during shutdown, and passes it to whoever needs to enqueue work.  Several
isolated instances may coexist (tests build their own).

Job lifecycle::

    enqueue ──→ waiting ──(rate limit + free worker)──→ active ──→ completed
                   ↑                                       │
                   └──── retry after 5s, 10s, ... ─────────┤
                                                           └──→ failed ─→ on_failure hook

Jobs are keyed by document id.  Enqueueing while a job for the document
is waiting or active returns the existing job; once it is terminal a new
enqueue replaces it.  Errors whose ``retryable`` attribute is ``False``
fail the job without using the remaining attempts.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import Any

import aiosqlite
import structlog

from bookmind.config.settings import Settings
from bookmind.models.job import ExtractionPayload, Job, JobState, JobStatus
from bookmind.pipeline.extraction_job import ExtractionJobProcessor
from bookmind.pipeline.progress_tracker import ProgressTracker
from bookmind.providers.storage.sqlite_job_store import SQLiteJobStore
from bookmind.utils.concurrency import TokenBucket
from bookmind.utils.errors import ContentParseError, JobQueueError
from bookmind.utils.logging import get_logger

_POLL_INTERVAL_SECONDS = 1.0


class JobQueue:
    """Worker pool that runs :class:`ExtractionJobProcessor` attempts.

    Parameters
    ----------
    store:
        Durable job storage.
    processor:
        Runs one attempt; its ``on_failure`` hook is called once a job
        is given up on.
    progress_tracker:
        Receives every state and progress change, in order.
    concurrency:
        Number of worker tasks (jobs processed at once).
    rate_limit_max, rate_limit_period:
        At most ``rate_limit_max`` job starts per ``rate_limit_period``
        seconds.
    max_attempts:
        Maximum attempts per job, the first one included.
    backoff_base_seconds:
        Delay before the second attempt; doubles for every further one.
    retry_parse_errors:
        Treat :class:`ContentParseError` as retryable.
    clock:
        Wall-clock source (epoch seconds) used for scheduling.
    """

    def __init__(
        self,
        store: SQLiteJobStore,
        processor: ExtractionJobProcessor,
        progress_tracker: ProgressTracker | None = None,
        *,
        concurrency: int = 3,
        rate_limit_max: int = 10,
        rate_limit_period: float = 60.0,
        max_attempts: int = 3,
        backoff_base_seconds: float = 5.0,
        retry_parse_errors: bool = False,
        completed_keep_count: int = 100,
        completed_keep_seconds: float = 24 * 3600,
        failed_keep_count: int = 500,
        failed_keep_seconds: float = 7 * 24 * 3600,
        poll_interval: float = _POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._processor = processor
        self._tracker = progress_tracker or ProgressTracker()
        self._concurrency = concurrency
        self._limiter = TokenBucket(rate_limit_max, rate_limit_period)
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._retry_parse_errors = retry_parse_errors
        self._retention = {
            JobState.COMPLETED: (completed_keep_count, completed_keep_seconds),
            JobState.FAILED: (failed_keep_count, failed_keep_seconds),
        }
        self._poll_interval = poll_interval
        self._clock = clock

        self._workers: list[asyncio.Task] = []
        self._wakeup = asyncio.Event()
        self._stopping = False
        self._started = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: SQLiteJobStore,
        processor: ExtractionJobProcessor,
        progress_tracker: ProgressTracker | None = None,
    ) -> JobQueue:
        return cls(
            store,
            processor,
            progress_tracker,
            concurrency=settings.queue_concurrency,
            rate_limit_max=settings.queue_rate_limit_max,
            rate_limit_period=settings.queue_rate_limit_period_seconds,
            max_attempts=settings.job_max_attempts,
            backoff_base_seconds=settings.job_backoff_base_seconds,
            retry_parse_errors=settings.job_retry_parse_errors,
            completed_keep_count=settings.job_completed_keep_count,
            completed_keep_seconds=settings.job_completed_keep_seconds,
            failed_keep_count=settings.job_failed_keep_count,
            failed_keep_seconds=settings.job_failed_keep_seconds,
        )

    @property
    def progress_tracker(self) -> ProgressTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Open the store, recover interrupted jobs and spawn the workers.

        Raises
        ------
        JobQueueError
            If the job store cannot be opened.
        """
        if self._started:
            return
        try:
            await self._store.initialize()
            recovered = await self._store.requeue_active(self._clock())
        except (aiosqlite.Error, OSError) as exc:
            self._logger.error("job_queue_start_failed", error=str(exc))
            raise JobQueueError(message=f"Job store unavailable: {exc}") from exc

        self._stopping = False
        self._workers = [
            asyncio.create_task(self._worker_loop(i), name=f"extraction-worker-{i}")
            for i in range(self._concurrency)
        ]
        self._started = True
        self._logger.info(
            "job_queue_started",
            workers=self._concurrency,
            recovered_jobs=recovered,
            rate_limit=self._limiter.capacity,
        )

    async def stop(self) -> None:
        """Cancel the workers.  Jobs cut off mid-attempt stay ``active``
        and are picked up again by the next :meth:`start`."""
        if not self._started:
            return
        self._stopping = True
        self._started = False
        self._wakeup.set()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        await self._tracker.drain()
        self._logger.info("job_queue_stopped")

    def is_available(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        document_id: str,
        file_url: str,
        direct_file_url: str | None = None,
    ) -> Job:
        """Queue an extraction for *document_id*, or return the job already
        waiting or active for it.

        Raises
        ------
        JobQueueError
            If the queue is not running or the store fails.
        """
        if not self._started:
            raise JobQueueError(message="Job queue is not running")
        payload = ExtractionPayload(
            document_id=document_id, file_url=file_url, direct_file_url=direct_file_url
        )
        try:
            job, created = await self._store.add_if_absent(document_id, payload, self._clock())
        except aiosqlite.Error as exc:
            raise JobQueueError(message=f"Failed to enqueue job: {exc}") from exc

        if created:
            self._logger.info("job_enqueued", job_id=job.job_id)
            await self._tracker.update(job.job_id, JobState.WAITING, 0, "Queued")
            self._wakeup.set()
        else:
            self._logger.info("job_already_queued", job_id=job.job_id, state=job.state.value)
        return job

    async def get_status(self, job_id: str) -> JobStatus | None:
        try:
            job = await self._store.get(job_id)
        except aiosqlite.Error as exc:
            raise JobQueueError(message=f"Failed to read job {job_id}: {exc}") from exc
        return JobStatus.from_job(job) if job else None

    async def run_next(self) -> bool:
        """Claim and process the next due job, if any.

        Returns ``True`` when a job was processed.  Workers call this in a
        loop; it is public so a single attempt can be driven directly.
        """
        job = await self._store.claim_next(self._clock())
        if job is None:
            return False
        await self._process(job)
        return True

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker_loop(self, index: int) -> None:
        log = self._logger.bind(worker=index)
        while not self._stopping:
            try:
                next_run = await self._store.earliest_waiting()
                now = self._clock()
                if next_run is None:
                    await self._sleep(self._poll_interval)
                    continue
                if next_run > now:
                    await self._sleep(min(next_run - now, self._poll_interval))
                    continue
                await self._limiter.acquire()
                await self.run_next()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                log.error("job_worker_error", error=str(exc), error_type=type(exc).__name__)
                await self._sleep(self._poll_interval)

    async def _sleep(self, seconds: float) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        self._wakeup.clear()

    async def _process(self, job: Job) -> None:
        job_id = job.job_id
        self._logger.info("job_started", job_id=job_id, attempt=job.attempts)
        await self._tracker.update(job_id, JobState.ACTIVE, 0, f"Attempt {job.attempts}")

        async def report(progress: int) -> None:
            await self._store.set_progress(job_id, progress)
            await self._tracker.update(job_id, JobState.ACTIVE, progress)

        try:
            result = await self._processor.run(job.payload, report)
        except asyncio.CancelledError:
            self._logger.warning("job_interrupted", job_id=job_id)
            raise
        except Exception as exc:
            await self._handle_failure(job, exc)
            return

        await self._store.complete(job_id, result, self._clock())
        await self._tracker.update(job_id, JobState.COMPLETED, 100, "Completed")
        self._logger.info("job_completed", job_id=job_id, attempt=job.attempts, **result)
        await self._purge(JobState.COMPLETED)

    async def _handle_failure(self, job: Job, error: Exception) -> None:
        job_id = job.job_id
        reason = str(error) or type(error).__name__
        retryable = self._is_retryable(error)

        if retryable and job.attempts < self._max_attempts:
            delay = self.backoff_delay(job.attempts)
            await self._store.reschedule(job_id, reason, self._clock() + delay)
            await self._tracker.update(
                job_id, JobState.WAITING, job.progress, f"Retrying in {delay:g}s: {reason}"
            )
            self._logger.warning(
                "job_retry_scheduled",
                job_id=job_id,
                attempt=job.attempts,
                delay_seconds=delay,
                error=reason,
            )
            return

        await self._store.fail(job_id, reason, self._clock())
        await self._tracker.update(job_id, JobState.FAILED, job.progress, reason)
        self._logger.error(
            "job_failed",
            job_id=job_id,
            attempts=job.attempts,
            retryable=retryable,
            error=reason,
        )
        try:
            await self._processor.on_failure(job.payload, error)
        except Exception as exc:
            self._logger.error("job_failure_hook_error", job_id=job_id, error=str(exc))
        await self._purge(JobState.FAILED)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the attempt following *attempt* (1-based)."""
        return self._backoff_base * (2 ** (attempt - 1))

    def _is_retryable(self, error: Exception) -> bool:
        if isinstance(error, ContentParseError) and self._retry_parse_errors:
            return True
        return bool(getattr(error, "retryable", True))

    async def _purge(self, state: JobState) -> None:
        keep_count, keep_seconds = self._retention[state]
        removed = await self._store.purge(state, keep_count, keep_seconds, self._clock())
        if removed:
            self._tracker.forget(removed)
            self._logger.debug("jobs_purged", state=state.value, removed=len(removed))

    def describe(self) -> dict[str, Any]:
        """Return the queue's configuration for the health endpoint."""
        return {
            "available": self.is_available(),
            "workers": self._concurrency,
            "max_attempts": self._max_attempts,
            "rate_limit": self._limiter.capacity,
        }
