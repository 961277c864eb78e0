"""SQLite-backed document repository.

Persists document records and their precomputed artifacts to a local
SQLite database using ``aiosqlite``.  List-valued fields (authors,
categories, questions) are stored as JSON text.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from bookmind.interfaces.repositories import IDocumentRepository
from bookmind.models.document import (
    ArtifactStatus,
    Document,
    ExtractedContent,
    ExtractionStatus,
    PrecomputedArtifacts,
    QuestionAnswer,
)
from bookmind.utils.errors import DocumentNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

_CREATE_DOCUMENTS_SQL = f"""\
CREATE TABLE IF NOT EXISTS documents (
    id                   TEXT PRIMARY KEY,
    title                TEXT    NOT NULL DEFAULT '',
    authors_json         TEXT    NOT NULL DEFAULT '[]',
    categories_json      TEXT    NOT NULL DEFAULT '[]',
    document_type        TEXT    NOT NULL DEFAULT 'ebook',
    file_url             TEXT,
    direct_file_url      TEXT,
    extracted_content    TEXT,
    content_hash         TEXT,
    page_count           INTEGER,
    word_count           INTEGER,
    size_bytes           INTEGER,
    extraction_status    TEXT    NOT NULL DEFAULT 'pending',
    content_version      INTEGER NOT NULL DEFAULT 0,
    content_extracted_at TEXT,
    created_at           TEXT    NOT NULL DEFAULT ({_NOW}),
    updated_at           TEXT    NOT NULL DEFAULT ({_NOW})
);
"""

_CREATE_ARTIFACTS_SQL = """\
CREATE TABLE IF NOT EXISTS artifacts (
    document_id            TEXT PRIMARY KEY REFERENCES documents(id) ON DELETE CASCADE,
    ai_summary             TEXT,
    ai_overview            TEXT,
    summary                TEXT,
    questions_json         TEXT NOT NULL DEFAULT '[]',
    summary_status         TEXT NOT NULL DEFAULT 'pending',
    questions_status       TEXT NOT NULL DEFAULT 'pending',
    summary_generated_at   TEXT,
    questions_generated_at TEXT
);
"""

_UPSERT_DOCUMENT_SQL = f"""\
INSERT INTO documents (id, title, authors_json, categories_json, document_type,
                       file_url, direct_file_url)
VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id)
DO UPDATE SET title           = excluded.title,
              authors_json    = excluded.authors_json,
              categories_json = excluded.categories_json,
              document_type   = excluded.document_type,
              file_url        = excluded.file_url,
              direct_file_url = excluded.direct_file_url,
              updated_at      = {_NOW};
"""

_SELECT_DOCUMENT_SQL = "SELECT * FROM documents WHERE id = ?;"

_SET_STATUS_SQL = f"""\
UPDATE documents SET extraction_status = ?, updated_at = {_NOW} WHERE id = ?;
"""

_SAVE_CONTENT_SQL = f"""\
UPDATE documents
SET extracted_content    = ?,
    content_hash         = ?,
    page_count           = ?,
    word_count           = ?,
    size_bytes           = ?,
    extraction_status    = 'completed',
    content_version      = content_version + 1,
    content_extracted_at = {_NOW},
    updated_at           = {_NOW}
WHERE id = ?;
"""

_ENSURE_ARTIFACTS_SQL = "INSERT OR IGNORE INTO artifacts (document_id) VALUES (?);"

_FAIL_PENDING_ARTIFACTS_SQL = """\
UPDATE artifacts
SET summary_status   = CASE WHEN summary_status   = 'pending' THEN 'failed' ELSE summary_status END,
    questions_status = CASE WHEN questions_status = 'pending' THEN 'failed' ELSE questions_status END
WHERE document_id = ?;
"""

_UPSERT_ARTIFACTS_SQL = """\
INSERT INTO artifacts (document_id, ai_summary, ai_overview, summary, questions_json,
                       summary_status, questions_status,
                       summary_generated_at, questions_generated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(document_id)
DO UPDATE SET ai_summary             = excluded.ai_summary,
              ai_overview            = excluded.ai_overview,
              summary                = excluded.summary,
              questions_json         = excluded.questions_json,
              summary_status         = excluded.summary_status,
              questions_status       = excluded.questions_status,
              summary_generated_at   = excluded.summary_generated_at,
              questions_generated_at = excluded.questions_generated_at;
"""


class SQLiteDocumentRepository(IDocumentRepository):
    """Document and artifact persistence backed by SQLite."""

    def __init__(self, db_path: str | Path = "data/bookmind.db") -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables if they don't exist and switch the file to WAL mode."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_DOCUMENTS_SQL)
            await db.execute(_CREATE_ARTIFACTS_SQL)
            await db.commit()
        logger.info("document_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def get(self, document_id: str) -> Document | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_DOCUMENT_SQL, (document_id,))
            row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def upsert(self, document: Document) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_DOCUMENT_SQL,
                (
                    document.id,
                    document.title,
                    json.dumps(document.authors),
                    json.dumps(document.categories),
                    document.document_type.value,
                    document.file_url,
                    document.direct_file_url,
                ),
            )
            await db.execute(_ENSURE_ARTIFACTS_SQL, (document.id,))
            await db.commit()

    async def mark_processing(self, document_id: str) -> None:
        await self._set_status(document_id, ExtractionStatus.PROCESSING)

    async def save_extracted_content(self, document_id: str, content: ExtractedContent) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                _SAVE_CONTENT_SQL,
                (
                    content.text,
                    content.content_hash,
                    content.page_count,
                    content.word_count,
                    content.size_bytes,
                    document_id,
                ),
            )
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(message=f"Document {document_id} not found")
            cursor = await db.execute(
                "SELECT content_version FROM documents WHERE id = ?;", (document_id,)
            )
            row = await cursor.fetchone()
            await db.commit()
        version = int(row[0])
        logger.info(
            "document_content_saved",
            document_id=document_id,
            version=version,
            word_count=content.word_count,
        )
        return version

    async def mark_extraction_failed(self, document_id: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_SET_STATUS_SQL, (ExtractionStatus.FAILED.value, document_id))
            await db.execute(_ENSURE_ARTIFACTS_SQL, (document_id,))
            await db.execute(_FAIL_PENDING_ARTIFACTS_SQL, (document_id,))
            await db.commit()
        logger.warning("document_extraction_failed", document_id=document_id)

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    async def get_artifacts(self, document_id: str) -> PrecomputedArtifacts:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM artifacts WHERE document_id = ?;", (document_id,)
            )
            row = await cursor.fetchone()
        if row is None:
            return PrecomputedArtifacts(document_id=document_id)
        return PrecomputedArtifacts(
            document_id=document_id,
            ai_summary=row["ai_summary"],
            ai_overview=row["ai_overview"],
            summary=row["summary"],
            questions=[QuestionAnswer(**qa) for qa in json.loads(row["questions_json"] or "[]")],
            summary_status=ArtifactStatus(row["summary_status"]),
            questions_status=ArtifactStatus(row["questions_status"]),
            summary_generated_at=row["summary_generated_at"],
            questions_generated_at=row["questions_generated_at"],
        )

    async def upsert_artifacts(self, artifacts: PrecomputedArtifacts) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _UPSERT_ARTIFACTS_SQL,
                (
                    artifacts.document_id,
                    artifacts.ai_summary,
                    artifacts.ai_overview,
                    artifacts.summary,
                    json.dumps([qa.model_dump() for qa in artifacts.questions]),
                    artifacts.summary_status.value,
                    artifacts.questions_status.value,
                    _iso(artifacts.summary_generated_at),
                    _iso(artifacts.questions_generated_at),
                ),
            )
            await db.commit()

    async def save_summary(self, document_id: str, summary: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_ENSURE_ARTIFACTS_SQL, (document_id,))
            await db.execute(
                f"UPDATE artifacts SET ai_summary = ?, summary_status = 'completed', "
                f"summary_generated_at = {_NOW} WHERE document_id = ?;",
                (summary, document_id),
            )
            await db.commit()

    async def save_questions(self, document_id: str, questions: list[QuestionAnswer]) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_ENSURE_ARTIFACTS_SQL, (document_id,))
            await db.execute(
                f"UPDATE artifacts SET questions_json = ?, questions_status = 'completed', "
                f"questions_generated_at = {_NOW} WHERE document_id = ?;",
                (json.dumps([qa.model_dump() for qa in questions]), document_id),
            )
            await db.commit()

    async def set_artifact_status(
        self,
        document_id: str,
        summary_status: ArtifactStatus | None = None,
        questions_status: ArtifactStatus | None = None,
    ) -> None:
        assignments: list[str] = []
        params: list[Any] = []
        if summary_status is not None:
            assignments.append("summary_status = ?")
            params.append(summary_status.value)
        if questions_status is not None:
            assignments.append("questions_status = ?")
            params.append(questions_status.value)
        if not assignments:
            return
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_ENSURE_ARTIFACTS_SQL, (document_id,))
            await db.execute(
                f"UPDATE artifacts SET {', '.join(assignments)} WHERE document_id = ?;",
                (*params, document_id),
            )
            await db.commit()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _set_status(self, document_id: str, status: ExtractionStatus) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_SET_STATUS_SQL, (status.value, document_id))
            updated = cursor.rowcount
            await db.commit()
        if updated == 0:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> Document:
        return Document(
            id=row["id"],
            title=row["title"],
            authors=json.loads(row["authors_json"] or "[]"),
            categories=json.loads(row["categories_json"] or "[]"),
            document_type=row["document_type"],
            file_url=row["file_url"],
            direct_file_url=row["direct_file_url"],
            extracted_content=row["extracted_content"],
            content_hash=row["content_hash"],
            page_count=row["page_count"],
            word_count=row["word_count"],
            size_bytes=row["size_bytes"],
            extraction_status=ExtractionStatus(row["extraction_status"]),
            content_version=row["content_version"],
            content_extracted_at=row["content_extracted_at"],
        )


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None
