"""WebSocket endpoint for real-time extraction job progress.

A client connects to ``/ws/jobs/{job_id}``, receives the current snapshot
immediately and then one JSON message per progress update::

    {"job_id": "doc-1", "state": "active", "progress": 40, "message": ""}

Updates are pushed through a :class:`ProgressTracker` listener that is
removed when the client disconnects.
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from bookmind.models.job import JobState
from bookmind.pipeline.progress_tracker import ProgressTracker
from bookmind.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_job_progress(websocket: WebSocket, job_id: str) -> None:
    """Stream progress updates for *job_id* until the client disconnects."""
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker

    await websocket.accept()
    _logger.info("websocket_connected", job_id=job_id)

    async def _on_progress(jid: str, state: JobState, progress: int, message: str) -> None:
        # The socket may close between an update and the send; the
        # listener is removed in the finally block below.
        with contextlib.suppress(Exception):
            await websocket.send_json(
                {
                    "job_id": jid,
                    "state": state.value,
                    "progress": progress,
                    "message": message,
                }
            )

    progress_tracker.register_listener(job_id, _on_progress)

    try:
        status = progress_tracker.get_status(job_id)
        await websocket.send_json({"job_id": job_id, **status})

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", job_id=job_id)

    finally:
        progress_tracker.unregister_listener(job_id, _on_progress)
        _logger.debug("websocket_listener_cleaned_up", job_id=job_id)
