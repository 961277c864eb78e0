"""End-to-end pipeline test: queue an extraction, let a worker run it
against real SQLite storage, then chat about the result.

Network access is replaced by an in-memory fetcher and scripted chat
providers; everything between them is the production code path.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
import pytest_asyncio

from bookmind.interfaces.blob_fetcher import IBlobFetcher
from bookmind.models.chat import ChatMessage, ChatRequest, ContextMethod, Generation, ProviderName
from bookmind.models.document import ArtifactStatus, Document, ExtractionStatus
from bookmind.models.job import JobState
from bookmind.pipeline.extraction_job import ExtractionJobProcessor
from bookmind.pipeline.job_queue import JobQueue
from bookmind.pipeline.progress_tracker import ProgressTracker
from bookmind.providers.storage.sqlite_chat_repository import SQLiteChatRepository
from bookmind.providers.storage.sqlite_document_repository import SQLiteDocumentRepository
from bookmind.providers.storage.sqlite_job_store import SQLiteJobStore
from bookmind.services.artifact_generator import QuestionGenerator, SummaryGenerator
from bookmind.services.chat_orchestrator import ChatOrchestrator
from bookmind.services.content_extractor import ContentExtractor
from bookmind.services.context_assembler import ContextAssembler
from bookmind.services.ingestion_service import IngestionService
from bookmind.services.provider_router import ProviderRouter
from bookmind.utils.errors import DocumentFetchError
from tests.conftest import SAMPLE_TEXT, FakeChatProvider

_QUESTIONS_REPLY = (
    '```json\n[{"question": "What did the keeper log?", "answer": "Every passing ship."}]\n```'
)


class InMemoryFetcher(IBlobFetcher):
    def __init__(self, blobs: dict[str, bytes]) -> None:
        self._blobs = blobs
        self.requested: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.requested.append(url)
        if url not in self._blobs:
            raise DocumentFetchError(message=f"HTTP 404 for {url}", status_code=404)
        return self._blobs[url]

    def get_provider_name(self) -> str:
        return "memory"


class ScriptedProvider(FakeChatProvider):
    """Answers question-generation prompts with JSON and everything else in prose."""

    async def generate(self, messages: list[ChatMessage]) -> Generation:
        generation = await super().generate(messages)
        if "insightful questions" in messages[-1].content:
            return generation.model_copy(update={"content": _QUESTIONS_REPLY})
        return generation


class MalformedReplyProvider(FakeChatProvider):
    """Fails the way an SDK does when a 200 response carries no JSON."""

    async def generate(self, messages: list[ChatMessage]) -> Generation:
        self.calls.append(list(messages))
        raise ValueError("Expecting value: line 1 column 1 (char 0)")


@pytest_asyncio.fixture
async def documents(tmp_path: Path) -> SQLiteDocumentRepository:
    repo = SQLiteDocumentRepository(tmp_path / "bookmind.db")
    await repo.initialize()
    await repo.upsert(
        Document(
            id="doc-1",
            title="The Keeper",
            authors=["A. Writer"],
            file_url="https://files.example.com/keeper.txt",
        )
    )
    await repo.upsert(
        Document(id="doc-2", title="Lost", file_url="https://files.example.com/missing.txt")
    )
    return repo


@pytest_asyncio.fixture
async def chats(tmp_path: Path) -> SQLiteChatRepository:
    repo = SQLiteChatRepository(tmp_path / "bookmind.db")
    await repo.initialize()
    return repo


@pytest.fixture
def router() -> ProviderRouter:
    return ProviderRouter(
        [ScriptedProvider(ProviderName.ZHIPU, reply="A keeper restores a lighthouse lamp.")]
    )


@pytest.fixture
def fetcher() -> InMemoryFetcher:
    return InMemoryFetcher({"https://files.example.com/keeper.txt": SAMPLE_TEXT.encode("utf-8")})


def _build_queue(
    tmp_path: Path,
    documents: SQLiteDocumentRepository,
    router: ProviderRouter,
    fetcher: InMemoryFetcher,
    max_attempts: int = 2,
) -> tuple[JobQueue, ExtractionJobProcessor]:
    processor = ExtractionJobProcessor(
        extractor=ContentExtractor(fetcher=fetcher),
        document_repository=documents,
        summary_generator=SummaryGenerator(router),
        question_generator=QuestionGenerator(router),
    )
    job_queue = JobQueue(
        SQLiteJobStore(tmp_path / "jobs.db"),
        processor,
        ProgressTracker(),
        concurrency=2,
        max_attempts=max_attempts,
        backoff_base_seconds=0.01,
        poll_interval=0.02,
    )
    return job_queue, processor


@pytest_asyncio.fixture
async def queue(
    tmp_path: Path,
    documents: SQLiteDocumentRepository,
    router: ProviderRouter,
    fetcher: InMemoryFetcher,
):
    job_queue, processor = _build_queue(tmp_path, documents, router, fetcher)
    await job_queue.start()
    yield job_queue, processor
    await job_queue.stop()


async def _wait_for_terminal(job_queue: JobQueue, job_id: str) -> JobState:
    for _ in range(500):
        status = await job_queue.get_status(job_id)
        if status is not None and status.state.is_terminal:
            return status.state
        await asyncio.sleep(0.01)
    raise AssertionError(f"job {job_id} never finished")


class TestExtractionPipeline:
    @pytest.mark.asyncio
    async def test_extract_then_chat(
        self,
        queue,
        documents: SQLiteDocumentRepository,
        chats: SQLiteChatRepository,
        router: ProviderRouter,
    ) -> None:
        job_queue, processor = queue
        ingestion = IngestionService(documents, processor, job_queue)

        requested = await ingestion.enqueue_extraction("doc-1")
        assert requested.queued is True
        assert await _wait_for_terminal(job_queue, "doc-1") == JobState.COMPLETED

        status = await ingestion.get_extraction_status("doc-1")
        assert status.extraction_status == ExtractionStatus.COMPLETED
        assert status.content_version == 1
        assert (status.word_count or 0) >= 30

        artifacts = await documents.get_artifacts("doc-1")
        assert artifacts.ai_summary == "A keeper restores a lighthouse lamp."
        assert artifacts.summary_status == ArtifactStatus.COMPLETED
        assert [qa.question for qa in artifacts.questions] == ["What did the keeper log?"]

        orchestrator = ChatOrchestrator(
            router=router,
            context_assembler=ContextAssembler(documents, chats, retrieval=None),
            document_repository=documents,
            chat_repository=chats,
        )
        result = await orchestrator.respond(
            ChatRequest(document_id="doc-1", question="What did the keeper log?", user_id="u1")
        )

        assert result.method == ContextMethod.AI_RESOURCES
        stored = await chats.get_session_messages(result.session_id)
        assert [m.content for m in stored] == [
            "What did the keeper log?",
            "A keeper restores a lighthouse lamp.",
        ]

    @pytest.mark.asyncio
    async def test_fetch_failure_marks_document_failed(
        self, queue, documents: SQLiteDocumentRepository, fetcher: InMemoryFetcher
    ) -> None:
        job_queue, processor = queue
        ingestion = IngestionService(documents, processor, job_queue)

        await ingestion.enqueue_extraction("doc-2")

        assert await _wait_for_terminal(job_queue, "doc-2") == JobState.FAILED
        job = await job_queue.get_status("doc-2")
        assert job is not None
        assert job.attempts == 2
        assert "404" in (job.failure_reason or "")
        document = await documents.get("doc-2")
        assert document is not None
        assert document.extraction_status == ExtractionStatus.FAILED
        assert fetcher.requested.count("https://files.example.com/missing.txt") == 2

    @pytest.mark.asyncio
    async def test_unexpected_artifact_error_keeps_job_completed(
        self,
        tmp_path: Path,
        documents: SQLiteDocumentRepository,
        fetcher: InMemoryFetcher,
    ) -> None:
        router = ProviderRouter([MalformedReplyProvider(ProviderName.GEMINI)])
        job_queue, processor = _build_queue(tmp_path, documents, router, fetcher, max_attempts=3)
        await job_queue.start()
        try:
            await IngestionService(documents, processor, job_queue).enqueue_extraction("doc-1")
            state = await _wait_for_terminal(job_queue, "doc-1")
            job = await job_queue.get_status("doc-1")
        finally:
            await job_queue.stop()

        assert state == JobState.COMPLETED
        assert job is not None
        assert job.attempts == 1
        document = await documents.get("doc-1")
        assert document is not None
        assert document.extraction_status == ExtractionStatus.COMPLETED
        assert document.content_version == 1
        artifacts = await documents.get_artifacts("doc-1")
        assert artifacts.summary_status == ArtifactStatus.FAILED
        assert artifacts.questions_status == ArtifactStatus.FAILED

    @pytest.mark.asyncio
    async def test_repeat_request_keeps_content_unless_forced(
        self, queue, documents: SQLiteDocumentRepository
    ) -> None:
        job_queue, processor = queue
        ingestion = IngestionService(documents, processor, job_queue)

        await ingestion.enqueue_extraction("doc-1")
        assert await _wait_for_terminal(job_queue, "doc-1") == JobState.COMPLETED
        first = await documents.get("doc-1")
        assert first is not None

        repeated = await ingestion.enqueue_extraction("doc-1")
        assert repeated.already_extracted is True
        assert repeated.queued is False
        assert repeated.version == 1

        forced = await ingestion.enqueue_extraction("doc-1", force=True)
        assert forced.queued is True
        assert await _wait_for_terminal(job_queue, "doc-1") == JobState.COMPLETED
        second = await documents.get("doc-1")
        assert second is not None
        assert second.content_version == 2
        assert second.content_hash == first.content_hash
