"""Job progress tracking with callback-based listener notification.

Keeps the latest state and progress percentage of every extraction job
and broadcasts each update to listener callbacks registered for that
job id.  The WebSocket endpoint registers one listener per connected
client; the job queue is the only producer.

    JobQueue ──update()──→ ProgressTracker ──callback()──→ WebSocket handler
                                                      ──→ (any other listener)

Plain-function listeners run inline.  Coroutine listeners are scheduled
as tasks chained per job, so a slow WebSocket never stalls the worker
that produced the update while updates for one job still arrive in the
order they were produced.  A listener that raises is logged and skipped.
Snapshots of jobs the queue has purged are dropped with :meth:`forget`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from bookmind.models.job import JobState
from bookmind.utils.logging import get_logger


@dataclass
class _JobSnapshot:
    state: JobState = JobState.WAITING
    progress: int = 0
    message: str = ""


class ProgressTracker:
    """Tracks and broadcasts extraction job progress via callbacks.

    Callbacks receive ``(job_id, state, progress, message)`` and may be
    plain functions or coroutine functions.
    """

    def __init__(self) -> None:
        self._snapshots: dict[str, _JobSnapshot] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._deliveries: dict[str, asyncio.Task] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        job_id: str,
        state: JobState,
        progress: int,
        message: str = "",
    ) -> None:
        """Record a progress update and notify all registered listeners.

        Parameters
        ----------
        job_id:
            The job to update.
        state:
            The job's current state.
        progress:
            Completion percentage (clamped to 0 – 100).
        message:
            Human-readable status message.
        """
        progress = max(0, min(100, int(progress)))
        self._snapshots[job_id] = _JobSnapshot(state=state, progress=progress, message=message)

        self._logger.debug(
            "progress_update",
            job_id=job_id,
            state=state.value,
            progress=progress,
            message=message,
        )

        self._notify_listeners(job_id, state, progress, message)

    def register_listener(self, job_id: str, callback: Callable) -> None:
        """Register a callback to receive progress updates for a job."""
        listeners = self._listeners.setdefault(job_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                job_id=job_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, job_id: str, callback: Callable) -> None:
        """Remove a previously registered callback for a job."""
        listeners = self._listeners.get(job_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                job_id=job_id,
                remaining_listeners=len(listeners),
            )
        if not listeners:
            self._listeners.pop(job_id, None)

    def forget(self, job_ids: Iterable[str]) -> None:
        """Drop the snapshots of *job_ids*; called when the queue purges them."""
        dropped = 0
        for job_id in job_ids:
            if self._snapshots.pop(job_id, None) is not None:
                dropped += 1
        if dropped:
            self._logger.debug("progress_snapshots_dropped", count=dropped)

    async def drain(self) -> None:
        """Wait until every scheduled listener delivery has finished."""
        while self._deliveries:
            await asyncio.gather(*self._deliveries.values(), return_exceptions=True)

    def get_status(self, job_id: str) -> dict:
        """Return the last recorded state and progress for a job.

        Returns
        -------
        dict
            Keys: ``state`` (:class:`str`), ``progress`` (:class:`int`),
            ``message`` (:class:`str`).  Zeroed defaults when the job has
            not reported anything in this process.
        """
        snapshot = self._snapshots.get(job_id) or _JobSnapshot()
        return {
            "state": snapshot.state.value,
            "progress": snapshot.progress,
            "message": snapshot.message,
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _notify_listeners(
        self,
        job_id: str,
        state: JobState,
        progress: int,
        message: str,
    ) -> None:
        for callback in list(self._listeners.get(job_id, [])):
            try:
                result = callback(job_id, state, progress, message)
            except Exception as exc:
                self._log_callback_error(job_id, callback, exc)
                continue
            if asyncio.iscoroutine(result):
                self._schedule(job_id, callback, result)

    def _schedule(self, job_id: str, callback: Callable, coro: Coroutine[Any, Any, Any]) -> None:
        previous = self._deliveries.get(job_id)
        task = asyncio.get_running_loop().create_task(
            self._deliver(job_id, callback, coro, previous)
        )
        self._deliveries[job_id] = task

        def _done(finished: asyncio.Task) -> None:
            if self._deliveries.get(job_id) is finished:
                del self._deliveries[job_id]

        task.add_done_callback(_done)

    async def _deliver(
        self,
        job_id: str,
        callback: Callable,
        coro: Coroutine[Any, Any, Any],
        previous: asyncio.Task | None,
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        try:
            await coro
        except Exception as exc:
            self._log_callback_error(job_id, callback, exc)

    def _log_callback_error(self, job_id: str, callback: Callable, exc: Exception) -> None:
        self._logger.warning(
            "listener_callback_error",
            job_id=job_id,
            error=str(exc),
            callback=getattr(callback, "__name__", repr(callback)),
        )
