"""Background job models for the extraction queue.

A :class:`Job` is keyed by document id: at most one job per document is
waiting or active at any time.  Jobs move ``WAITING -> ACTIVE`` and then
either to a terminal state or back to ``WAITING`` with a later ``run_at``
when an attempt fails and attempts remain.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):  # noqa: UP042
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class ExtractionPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    document_id: str
    file_url: str
    direct_file_url: str | None = None


class Job(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    payload: ExtractionPayload
    state: JobState = JobState.WAITING
    progress: int = Field(default=0, ge=0, le=100)
    attempts: int = Field(default=0, ge=0, description="Attempts started so far.")
    result: dict[str, Any] | None = None
    failure_reason: str | None = None
    run_at: datetime
    created_at: datetime
    finished_at: datetime | None = None


class JobStatus(BaseModel):
    """Externally visible snapshot of a job."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    state: JobState
    progress: int
    attempts: int
    payload: ExtractionPayload
    result: dict[str, Any] | None = None
    failure_reason: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> JobStatus:
        return cls(
            job_id=job.job_id,
            state=job.state,
            progress=job.progress,
            attempts=job.attempts,
            payload=job.payload,
            result=job.result,
            failure_reason=job.failure_reason,
        )


class ExtractionRequestResult(BaseModel):
    """Outcome of asking for a document to be extracted.

    ``queued`` is False when the queue was unavailable and the extraction
    ran synchronously; the counts are filled in for that case.
    ``already_extracted`` is True when the stored content was kept and
    nothing was queued.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    queued: bool
    job_id: str | None = None
    state: JobState | None = None
    word_count: int | None = None
    page_count: int | None = None
    size_bytes: int | None = None
    version: int | None = None
    already_extracted: bool = False
