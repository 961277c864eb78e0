"""Entry point for requesting and inspecting document extraction.

:class:`IngestionService` hands extraction requests to the
:class:`~bookmind.pipeline.job_queue.JobQueue`.  When the queue is not
running, or its store fails while enqueueing, the same
:class:`~bookmind.pipeline.extraction_job.ExtractionJobProcessor` runs
inline instead and the caller gets the extraction counts back directly
(``queued=False``).  That degraded mode has no retries: one attempt, and
the failure hook runs if it fails.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from bookmind.interfaces.repositories import IDocumentRepository
from bookmind.models.document import Document, ExtractionStatus, ExtractionSummary
from bookmind.models.job import ExtractionPayload, ExtractionRequestResult, JobStatus
from bookmind.pipeline.extraction_job import ExtractionJobProcessor
from bookmind.utils.errors import (
    ContentParseError,
    DocumentNotFoundError,
    JobQueueError,
    RAGError,
)

if TYPE_CHECKING:
    from bookmind.pipeline.job_queue import JobQueue
    from bookmind.services.retrieval import RetrievalEngine

logger = structlog.get_logger(logger_name=__name__)


class IngestionService:
    """Requests extractions and reports their status.

    Parameters
    ----------
    document_repository:
        Source of document records and URLs.
    processor:
        Runs an extraction attempt; used inline when the queue is down.
    job_queue:
        Background queue; ``None`` means every request runs inline.
    retrieval:
        Used by :meth:`reindex` to rebuild a document's chunks.
    """

    def __init__(
        self,
        document_repository: IDocumentRepository,
        processor: ExtractionJobProcessor,
        job_queue: JobQueue | None = None,
        retrieval: RetrievalEngine | None = None,
    ) -> None:
        self._documents = document_repository
        self._processor = processor
        self._queue = job_queue
        self._retrieval = retrieval

    @property
    def queue_available(self) -> bool:
        return self._queue is not None and self._queue.is_available()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enqueue_extraction(
        self,
        document_id: str,
        file_url: str | None = None,
        direct_file_url: str | None = None,
        force: bool = False,
    ) -> ExtractionRequestResult:
        """Queue (or, in degraded mode, run) an extraction for a document.

        URLs default to the ones stored on the document record.  A document
        whose extraction already completed is not extracted again unless
        *force* is set or a different file URL is supplied; the stored
        counts are returned with ``already_extracted=True`` instead.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist.
        ContentParseError
            If neither the request nor the record carries a file URL.
        """
        document = await self._require_document(document_id)
        file_url = file_url or document.file_url
        direct_file_url = direct_file_url or document.direct_file_url
        if not file_url and not direct_file_url:
            raise ContentParseError(message=f"Document {document_id} has no file URL")

        urls_changed = file_url != document.file_url or direct_file_url != document.direct_file_url
        if not force and not urls_changed and _is_extracted(document):
            logger.info(
                "extraction_skipped_already_extracted",
                document_id=document_id,
                version=document.content_version,
            )
            return ExtractionRequestResult(
                document_id=document_id,
                queued=False,
                already_extracted=True,
                word_count=document.word_count,
                page_count=document.page_count,
                size_bytes=document.size_bytes,
                version=document.content_version,
            )

        if self.queue_available:
            try:
                job = await self._queue.enqueue(
                    document_id, file_url or direct_file_url, direct_file_url
                )
            except JobQueueError as exc:
                logger.warning(
                    "job_queue_unavailable_running_inline",
                    document_id=document_id,
                    error=str(exc),
                )
            else:
                return ExtractionRequestResult(
                    document_id=document_id,
                    queued=True,
                    job_id=job.job_id,
                    state=job.state,
                )
        else:
            logger.info("job_queue_disabled_running_inline", document_id=document_id)

        return await self.extract_now(document_id, file_url or direct_file_url, direct_file_url)

    async def extract_now(
        self,
        document_id: str,
        file_url: str,
        direct_file_url: str | None = None,
    ) -> ExtractionRequestResult:
        """Run a single extraction attempt inline.

        The processor's failure hook runs before the error is re-raised.
        """
        payload = ExtractionPayload(
            document_id=document_id, file_url=file_url, direct_file_url=direct_file_url
        )
        try:
            result = await self._processor.run(payload)
        except Exception as exc:
            await self._processor.on_failure(payload, exc)
            raise
        return ExtractionRequestResult(document_id=document_id, queued=False, **result)

    async def get_job_status(self, job_id: str) -> JobStatus | None:
        if self._queue is None:
            return None
        return await self._queue.get_status(job_id)

    async def get_extraction_status(self, document_id: str) -> ExtractionSummary:
        document = await self._require_document(document_id)
        return ExtractionSummary(
            document_id=document.id,
            has_content=document.has_content,
            extraction_status=document.extraction_status,
            content_version=document.content_version,
            word_count=document.word_count,
            page_count=document.page_count,
            size_bytes=document.size_bytes,
            content_extracted_at=document.content_extracted_at,
        )

    async def reindex(self, document_id: str) -> int:
        """Rebuild the chunk index of an already extracted document.

        Returns the number of chunks stored.

        Raises
        ------
        RAGError
            If no retrieval engine is configured, the document has no
            extracted content, or embedding fails.
        """
        if self._retrieval is None:
            raise RAGError(message="No retrieval engine configured")
        document = await self._require_document(document_id)
        if not document.has_content:
            raise RAGError(message=f"Document {document_id} has no extracted content")
        return await self._retrieval.index_document(document_id, document.extracted_content or "")

    async def _require_document(self, document_id: str) -> Document:
        document = await self._documents.get(document_id)
        if document is None:
            raise DocumentNotFoundError(message=f"Document {document_id} not found")
        return document


def _is_extracted(document: Document) -> bool:
    return (
        document.extraction_status == ExtractionStatus.COMPLETED
        and document.has_content
        and bool(document.content_hash)
    )
