"""Unit tests for IngestionService."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bookmind.models.document import Document, ExtractionStatus
from bookmind.models.job import ExtractionPayload, Job, JobState, JobStatus
from bookmind.pipeline.extraction_job import ExtractionJobProcessor
from bookmind.pipeline.job_queue import JobQueue
from bookmind.services.ingestion_service import IngestionService
from bookmind.services.retrieval import RetrievalEngine
from bookmind.utils.errors import (
    ContentParseError,
    DocumentFetchError,
    DocumentNotFoundError,
    JobQueueError,
    RAGError,
)

_NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)
_RESULT = {"word_count": 40, "page_count": 3, "size_bytes": 2048, "version": 2}


def _job(document_id: str = "doc-1") -> Job:
    return Job(
        job_id=document_id,
        payload=ExtractionPayload(
            document_id=document_id, file_url="https://files.example.com/keeper.pdf"
        ),
        run_at=_NOW,
        created_at=_NOW,
    )


@pytest.fixture
def processor() -> MagicMock:
    mock = MagicMock(spec=ExtractionJobProcessor)
    mock.run = AsyncMock(return_value=dict(_RESULT))
    mock.on_failure = AsyncMock()
    return mock


@pytest.fixture
def job_queue() -> MagicMock:
    mock = MagicMock(spec=JobQueue)
    mock.is_available.return_value = True
    mock.enqueue = AsyncMock(return_value=_job())
    mock.get_status = AsyncMock(return_value=JobStatus.from_job(_job()))
    return mock


class TestEnqueueExtraction:
    @pytest.fixture(autouse=True)
    def _pending(self, mock_document_repository: MagicMock, pending_document: Document) -> None:
        mock_document_repository.get.return_value = pending_document

    @pytest.mark.asyncio
    async def test_queued(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor, job_queue)

        result = await service.enqueue_extraction("doc-1")

        assert result.queued is True
        assert result.job_id == "doc-1"
        assert result.state == JobState.WAITING
        job_queue.enqueue.assert_awaited_once_with(
            "doc-1", "https://files.example.com/keeper.pdf", None
        )
        processor.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_request_urls_override_record(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor, job_queue)

        await service.enqueue_extraction(
            "doc-1", file_url="https://other.example.com/a.epub", direct_file_url="https://cdn/a"
        )

        job_queue.enqueue.assert_awaited_once_with(
            "doc-1", "https://other.example.com/a.epub", "https://cdn/a"
        )

    @pytest.mark.asyncio
    async def test_queue_error_runs_inline(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        job_queue.enqueue.side_effect = JobQueueError("database is locked")
        service = IngestionService(mock_document_repository, processor, job_queue)

        result = await service.enqueue_extraction("doc-1")

        assert result.queued is False
        assert result.word_count == 40
        assert result.version == 2
        processor.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_queue_runs_inline(
        self, mock_document_repository: MagicMock, processor: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor)

        result = await service.enqueue_extraction("doc-1")

        assert result.queued is False
        payload = processor.run.await_args.args[0]
        assert payload == ExtractionPayload(
            document_id="doc-1", file_url="https://files.example.com/keeper.pdf"
        )

    @pytest.mark.asyncio
    async def test_stopped_queue_runs_inline(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        job_queue.is_available.return_value = False
        service = IngestionService(mock_document_repository, processor, job_queue)

        result = await service.enqueue_extraction("doc-1")

        assert result.queued is False
        job_queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inline_failure_runs_hook(
        self, mock_document_repository: MagicMock, processor: MagicMock
    ) -> None:
        error = DocumentFetchError("HTTP 404", status_code=404)
        processor.run.side_effect = error
        service = IngestionService(mock_document_repository, processor)

        with pytest.raises(DocumentFetchError):
            await service.enqueue_extraction("doc-1")
        processor.on_failure.assert_awaited_once()
        assert processor.on_failure.await_args.args[1] is error

    @pytest.mark.asyncio
    async def test_unknown_document(
        self, mock_document_repository: MagicMock, processor: MagicMock
    ) -> None:
        mock_document_repository.get.return_value = None
        service = IngestionService(mock_document_repository, processor)

        with pytest.raises(DocumentNotFoundError):
            await service.enqueue_extraction("missing")

    @pytest.mark.asyncio
    async def test_no_file_url(
        self,
        mock_document_repository: MagicMock,
        processor: MagicMock,
        pending_document: Document,
    ) -> None:
        mock_document_repository.get.return_value = pending_document.model_copy(
            update={"file_url": None, "direct_file_url": None}
        )
        service = IngestionService(mock_document_repository, processor)

        with pytest.raises(ContentParseError):
            await service.enqueue_extraction("doc-1")
        processor.run.assert_not_awaited()


class TestAlreadyExtracted:
    @pytest.mark.asyncio
    async def test_completed_document_is_not_extracted_again(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor, job_queue)

        result = await service.enqueue_extraction("doc-1")

        assert result.already_extracted is True
        assert result.queued is False
        assert result.version == 1
        assert result.word_count == 40
        assert result.page_count == 3
        job_queue.enqueue.assert_not_awaited()
        processor.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_force_queues_again(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor, job_queue)

        result = await service.enqueue_extraction("doc-1", force=True)

        assert result.queued is True
        assert result.already_extracted is False
        job_queue.enqueue.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_force_without_queue_runs_inline(
        self, mock_document_repository: MagicMock, processor: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor)

        result = await service.enqueue_extraction("doc-1", force=True)

        assert result.version == 2
        processor.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_file_url_extracts_again(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor, job_queue)

        result = await service.enqueue_extraction(
            "doc-1", file_url="https://files.example.com/keeper-2nd-edition.pdf"
        )

        assert result.queued is True
        job_queue.enqueue.assert_awaited_once_with(
            "doc-1", "https://files.example.com/keeper-2nd-edition.pdf", None
        )

    @pytest.mark.asyncio
    async def test_failed_document_is_extracted_again(
        self,
        mock_document_repository: MagicMock,
        processor: MagicMock,
        job_queue: MagicMock,
        extracted_document: Document,
    ) -> None:
        mock_document_repository.get.return_value = extracted_document.model_copy(
            update={"extraction_status": ExtractionStatus.FAILED}
        )
        service = IngestionService(mock_document_repository, processor, job_queue)

        result = await service.enqueue_extraction("doc-1")

        assert result.queued is True
        assert result.already_extracted is False


class TestStatus:
    @pytest.mark.asyncio
    async def test_job_status_without_queue(
        self, mock_document_repository: MagicMock, processor: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor)
        assert await service.get_job_status("doc-1") is None

    @pytest.mark.asyncio
    async def test_job_status_from_queue(
        self, mock_document_repository: MagicMock, processor: MagicMock, job_queue: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor, job_queue)
        status = await service.get_job_status("doc-1")
        assert status is not None
        assert status.state == JobState.WAITING

    @pytest.mark.asyncio
    async def test_extraction_status(
        self, mock_document_repository: MagicMock, processor: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor)

        summary = await service.get_extraction_status("doc-1")

        assert summary.has_content is True
        assert summary.extraction_status == ExtractionStatus.COMPLETED
        assert summary.content_version == 1
        assert summary.word_count == 40


class TestReindex:
    @pytest.mark.asyncio
    async def test_reindex(self, mock_document_repository: MagicMock, processor: MagicMock) -> None:
        retrieval = MagicMock(spec=RetrievalEngine)
        retrieval.index_document = AsyncMock(return_value=7)
        service = IngestionService(mock_document_repository, processor, retrieval=retrieval)

        assert await service.reindex("doc-1") == 7
        assert retrieval.index_document.await_args.args[0] == "doc-1"

    @pytest.mark.asyncio
    async def test_reindex_without_engine(
        self, mock_document_repository: MagicMock, processor: MagicMock
    ) -> None:
        service = IngestionService(mock_document_repository, processor)
        with pytest.raises(RAGError):
            await service.reindex("doc-1")

    @pytest.mark.asyncio
    async def test_reindex_without_content(
        self,
        mock_document_repository: MagicMock,
        processor: MagicMock,
        pending_document: Document,
    ) -> None:
        mock_document_repository.get.return_value = pending_document
        retrieval = MagicMock(spec=RetrievalEngine)
        retrieval.index_document = AsyncMock()
        service = IngestionService(mock_document_repository, processor, retrieval=retrieval)

        with pytest.raises(RAGError):
            await service.reindex("doc-1")
        retrieval.index_document.assert_not_awaited()
