"""SQLite-backed durable job store for the extraction queue.

Jobs survive process restarts: anything still ``active`` when a process
died is moved back to ``waiting`` by :meth:`SQLiteJobStore.requeue_active`
on the next start.  Timestamps are stored as epoch seconds (REAL) so
ordering and retention comparisons stay numeric.

State-changing reads (enqueue dedup, claiming the next job) run inside
``BEGIN IMMEDIATE`` transactions so two workers can never claim the same
job.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from bookmind.models.job import ExtractionPayload, Job, JobState

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS jobs (
    job_id         TEXT PRIMARY KEY,
    payload_json   TEXT    NOT NULL,
    state          TEXT    NOT NULL,
    progress       INTEGER NOT NULL DEFAULT 0,
    attempts       INTEGER NOT NULL DEFAULT 0,
    result_json    TEXT,
    failure_reason TEXT,
    run_at         REAL    NOT NULL,
    created_at     REAL    NOT NULL,
    finished_at    REAL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_jobs_state_run ON jobs(state, run_at);",
    "CREATE INDEX IF NOT EXISTS idx_jobs_state_finished ON jobs(state, finished_at);",
]

_SELECT_SQL = "SELECT * FROM jobs WHERE job_id = ?;"

_REPLACE_SQL = """\
INSERT OR REPLACE INTO jobs (job_id, payload_json, state, progress, attempts,
                             result_json, failure_reason, run_at, created_at, finished_at)
VALUES (?, ?, 'waiting', 0, 0, NULL, NULL, ?, ?, NULL);
"""

_NEXT_DUE_SQL = """\
SELECT job_id FROM jobs
WHERE state = 'waiting' AND run_at <= ?
ORDER BY run_at ASC, created_at ASC
LIMIT 1;
"""

_CLAIM_SQL = """\
UPDATE jobs SET state = 'active', attempts = attempts + 1
WHERE job_id = ? AND state = 'waiting';
"""

_EARLIEST_WAITING_SQL = "SELECT MIN(run_at) FROM jobs WHERE state = 'waiting';"

_PROGRESS_SQL = "UPDATE jobs SET progress = ? WHERE job_id = ?;"

_COMPLETE_SQL = """\
UPDATE jobs SET state = 'completed', progress = 100, result_json = ?,
                failure_reason = NULL, finished_at = ?
WHERE job_id = ?;
"""

_RESCHEDULE_SQL = """\
UPDATE jobs SET state = 'waiting', failure_reason = ?, run_at = ?
WHERE job_id = ?;
"""

_FAIL_SQL = """\
UPDATE jobs SET state = 'failed', failure_reason = ?, finished_at = ?
WHERE job_id = ?;
"""

_REQUEUE_ACTIVE_SQL = "UPDATE jobs SET state = 'waiting', run_at = ? WHERE state = 'active';"

_PURGE_SELECT_SQL = """\
SELECT job_id FROM jobs WHERE state = ? AND (
    finished_at < ? OR job_id NOT IN (
        SELECT job_id FROM jobs WHERE state = ? ORDER BY finished_at DESC LIMIT ?
    )
);
"""

_DELETE_SQL = "DELETE FROM jobs WHERE job_id = ?;"


class SQLiteJobStore:
    """Durable storage for :class:`~bookmind.models.job.Job` records."""

    def __init__(self, db_path: str | Path = "data/jobs.db") -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("job_db_initialized", path=str(self._db_path))

    async def get(self, job_id: str) -> Job | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_SQL, (job_id,))
            row = await cursor.fetchone()
        return self._row_to_job(row) if row else None

    async def add_if_absent(
        self, job_id: str, payload: ExtractionPayload, now: float
    ) -> tuple[Job, bool]:
        """Insert a waiting job unless a non-terminal one already exists.

        Returns
        -------
        tuple[Job, bool]
            The job now stored under *job_id* and whether it was created.
        """
        async with aiosqlite.connect(str(self._db_path), isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN IMMEDIATE;")
            try:
                cursor = await db.execute(_SELECT_SQL, (job_id,))
                row = await cursor.fetchone()
                if row is not None and not JobState(row["state"]).is_terminal:
                    await db.execute("COMMIT;")
                    return self._row_to_job(row), False
                await db.execute(_REPLACE_SQL, (job_id, payload.model_dump_json(), now, now))
                cursor = await db.execute(_SELECT_SQL, (job_id,))
                row = await cursor.fetchone()
                await db.execute("COMMIT;")
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
        return self._row_to_job(row), True

    async def claim_next(self, now: float) -> Job | None:
        """Atomically move the earliest due waiting job to ``active``."""
        async with aiosqlite.connect(str(self._db_path), isolation_level=None) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN IMMEDIATE;")
            try:
                cursor = await db.execute(_NEXT_DUE_SQL, (now,))
                row = await cursor.fetchone()
                if row is None:
                    await db.execute("COMMIT;")
                    return None
                job_id = row["job_id"]
                await db.execute(_CLAIM_SQL, (job_id,))
                cursor = await db.execute(_SELECT_SQL, (job_id,))
                row = await cursor.fetchone()
                await db.execute("COMMIT;")
            except BaseException:
                await db.execute("ROLLBACK;")
                raise
        return self._row_to_job(row)

    async def earliest_waiting(self) -> float | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_EARLIEST_WAITING_SQL)
            row = await cursor.fetchone()
        return float(row[0]) if row and row[0] is not None else None

    async def set_progress(self, job_id: str, progress: int) -> None:
        await self._execute(_PROGRESS_SQL, (progress, job_id))

    async def complete(self, job_id: str, result: dict[str, Any], now: float) -> None:
        await self._execute(_COMPLETE_SQL, (json.dumps(result), now, job_id))

    async def reschedule(self, job_id: str, reason: str, run_at: float) -> None:
        await self._execute(_RESCHEDULE_SQL, (reason, run_at, job_id))

    async def fail(self, job_id: str, reason: str, now: float) -> None:
        await self._execute(_FAIL_SQL, (reason, now, job_id))

    async def requeue_active(self, now: float) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_REQUEUE_ACTIVE_SQL, (now,))
            moved = cursor.rowcount
            await db.commit()
        return moved

    async def purge(
        self, state: JobState, keep_count: int, max_age_seconds: float, now: float
    ) -> list[str]:
        """Delete *state* jobs older than *max_age_seconds* or beyond the
        newest *keep_count*; return the ids removed."""
        params = (state.value, now - max_age_seconds, state.value, keep_count)
        async with aiosqlite.connect(str(self._db_path)) as db:
            async with db.execute(_PURGE_SELECT_SQL, params) as cursor:
                removed = [row[0] for row in await cursor.fetchall()]
            if removed:
                await db.executemany(_DELETE_SQL, [(job_id,) for job_id in removed])
                await db.commit()
        return removed

    async def _execute(self, sql: str, params: tuple[Any, ...]) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(sql, params)
            await db.commit()

    @staticmethod
    def _row_to_job(row: aiosqlite.Row) -> Job:
        return Job(
            job_id=row["job_id"],
            payload=ExtractionPayload.model_validate_json(row["payload_json"]),
            state=JobState(row["state"]),
            progress=row["progress"],
            attempts=row["attempts"],
            result=json.loads(row["result_json"]) if row["result_json"] else None,
            failure_reason=row["failure_reason"],
            run_at=_to_datetime(row["run_at"]),
            created_at=_to_datetime(row["created_at"]),
            finished_at=_to_datetime(row["finished_at"]) if row["finished_at"] is not None else None,
        )


def _to_datetime(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)  # noqa: UP017
