"""Extraction job processor: one attempt at turning a document URL into
persisted text and derived artifacts.

Each attempt runs these steps in order and reports a progress checkpoint
after each one:

    mark processing ─10─→ extract ─40─→ save content (+ index) ─60─→
    summary (best effort) ─80─→ questions (best effort) ─100

Extraction and persistence failures propagate so the job queue can
retry them.  Artifact generation and chunk indexing are best effort:
their failures are logged and recorded as artifact status ``failed``
but never fail the job.

The processor is used by the :class:`~bookmind.pipeline.job_queue.JobQueue`
workers and, when the queue is unavailable, directly by the ingestion
service.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from bookmind.interfaces.repositories import IDocumentRepository
from bookmind.models.document import ArtifactStatus, Document
from bookmind.models.job import ExtractionPayload
from bookmind.services.artifact_generator import QuestionGenerator, SummaryGenerator
from bookmind.services.content_extractor import ContentExtractor
from bookmind.services.retrieval import RetrievalEngine
from bookmind.utils.errors import DocumentNotFoundError
from bookmind.utils.logging import get_logger

ProgressCallback = Callable[[int], Awaitable[None]]

PROGRESS_STARTED = 10
PROGRESS_EXTRACTED = 40
PROGRESS_SAVED = 60
PROGRESS_SUMMARY = 80
PROGRESS_DONE = 100


async def _no_progress(progress: int) -> None:
    return None


class ExtractionJobProcessor:
    """Runs the extraction steps for a single :class:`ExtractionPayload`."""

    def __init__(
        self,
        extractor: ContentExtractor,
        document_repository: IDocumentRepository,
        summary_generator: SummaryGenerator | None = None,
        question_generator: QuestionGenerator | None = None,
        retrieval: RetrievalEngine | None = None,
    ) -> None:
        self._extractor = extractor
        self._documents = document_repository
        self._summary_generator = summary_generator
        self._question_generator = question_generator
        self._retrieval = retrieval
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def run(
        self,
        payload: ExtractionPayload,
        report: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        """Run one attempt.

        Parameters
        ----------
        payload:
            The document id and URLs to extract from.
        report:
            Awaited with each progress checkpoint.

        Returns
        -------
        dict
            ``word_count``, ``page_count``, ``size_bytes`` and the new
            content ``version``.

        Raises
        ------
        bookmind.utils.errors.ContentExtractionError
            If fetching or parsing the document failed.
        bookmind.utils.errors.DocumentNotFoundError
            If the document record does not exist.
        """
        report = report or _no_progress
        document_id = payload.document_id

        await self._documents.mark_processing(document_id)
        await report(PROGRESS_STARTED)

        content = await self._extractor.extract(payload.file_url, payload.direct_file_url)
        await report(PROGRESS_EXTRACTED)

        version = await self._documents.save_extracted_content(document_id, content)
        await self._documents.set_artifact_status(
            document_id,
            summary_status=ArtifactStatus.PENDING,
            questions_status=ArtifactStatus.PENDING,
        )
        await self._index(document_id, content.text)
        await report(PROGRESS_SAVED)

        document = await self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")

        await self._generate_summary(document, content.text)
        await report(PROGRESS_SUMMARY)

        await self._generate_questions(document, content.text)
        await report(PROGRESS_DONE)

        self._logger.info(
            "extraction_job_complete",
            document_id=document_id,
            version=version,
            word_count=content.word_count,
            page_count=content.page_count,
        )
        return {
            "word_count": content.word_count,
            "page_count": content.page_count,
            "size_bytes": content.size_bytes,
            "version": version,
        }

    async def on_failure(self, payload: ExtractionPayload, error: BaseException) -> None:
        """Record a job that will not be retried again."""
        self._logger.error(
            "extraction_job_failed",
            document_id=payload.document_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        await self._documents.mark_extraction_failed(payload.document_id)

    # ------------------------------------------------------------------
    # Best-effort steps
    # ------------------------------------------------------------------

    async def _index(self, document_id: str, text: str) -> None:
        if self._retrieval is None:
            return
        try:
            chunks = await self._retrieval.index_document(document_id, text)
        except Exception as exc:
            self._logger.warning(
                "document_index_failed",
                document_id=document_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        self._logger.info("document_indexed", document_id=document_id, chunks=chunks)

    async def _generate_summary(self, document: Document, text: str) -> None:
        if self._summary_generator is None:
            self._logger.warning("summary_generator_unavailable", document_id=document.id)
            await self._documents.set_artifact_status(
                document.id, summary_status=ArtifactStatus.FAILED
            )
            return
        try:
            summary = await self._summary_generator.generate(document, text)
        except Exception as exc:
            self._logger.warning(
                "summary_generation_failed",
                document_id=document.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._documents.set_artifact_status(
                document.id, summary_status=ArtifactStatus.FAILED
            )
            return
        await self._documents.save_summary(document.id, summary)

    async def _generate_questions(self, document: Document, text: str) -> None:
        if self._question_generator is None:
            self._logger.warning("question_generator_unavailable", document_id=document.id)
            await self._documents.set_artifact_status(
                document.id, questions_status=ArtifactStatus.FAILED
            )
            return
        try:
            questions = await self._question_generator.generate(document, text)
        except Exception as exc:
            self._logger.warning(
                "question_generation_failed",
                document_id=document.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._documents.set_artifact_status(
                document.id, questions_status=ArtifactStatus.FAILED
            )
            return
        await self._documents.save_questions(document.id, questions)
