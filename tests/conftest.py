"""Shared pytest fixtures for the bookmind test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest

from bookmind.config.settings import Settings
from bookmind.interfaces.llm_provider import IChatProvider, StreamPiece
from bookmind.interfaces.repositories import IChatRepository, IDocumentRepository
from bookmind.models.chat import ChatMessage, Generation, ProviderName, TokenUsage
from bookmind.models.document import (
    ArtifactStatus,
    Document,
    ExtractionStatus,
    PrecomputedArtifacts,
)
from bookmind.utils.errors import ProviderLimitError

SAMPLE_TEXT = (
    "Chapter One. The lighthouse keeper kept a log of every ship that passed.\n\n"
    "Chapter Two. A storm came in from the west and the lamp went dark.\n\n"
    "Chapter Three. The keeper rebuilt the lamp with parts from a wreck."
)


# ---------------------------------------------------------------------------
# Settings / paths
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def make_settings():
    """Factory for Settings that ignores any local .env file."""

    def _make(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@pytest.fixture
def pending_document() -> Document:
    return Document(
        id="doc-1",
        title="The Keeper",
        authors=["A. Writer"],
        categories=["Fiction"],
        file_url="https://files.example.com/keeper.pdf",
    )


@pytest.fixture
def extracted_document(pending_document: Document) -> Document:
    return pending_document.model_copy(
        update={
            "extracted_content": SAMPLE_TEXT,
            "content_hash": "abc123",
            "word_count": 40,
            "page_count": 3,
            "size_bytes": 2048,
            "extraction_status": ExtractionStatus.COMPLETED,
            "content_version": 1,
        }
    )


@pytest.fixture
def empty_artifacts() -> PrecomputedArtifacts:
    return PrecomputedArtifacts(document_id="doc-1")


@pytest.fixture
def full_artifacts() -> PrecomputedArtifacts:
    return PrecomputedArtifacts(
        document_id="doc-1",
        ai_summary="A keeper loses and restores the lighthouse lamp.",
        ai_overview="A short novel about duty.",
        summary="Lighthouse story.",
        summary_status=ArtifactStatus.COMPLETED,
    )


# ---------------------------------------------------------------------------
# Repository mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_document_repository(
    extracted_document: Document, empty_artifacts: PrecomputedArtifacts
) -> MagicMock:
    """Mock IDocumentRepository returning the extracted sample document."""
    repo = MagicMock(spec=IDocumentRepository)
    repo.get = AsyncMock(return_value=extracted_document)
    repo.upsert = AsyncMock()
    repo.mark_processing = AsyncMock()
    repo.save_extracted_content = AsyncMock(return_value=1)
    repo.mark_extraction_failed = AsyncMock()
    repo.get_artifacts = AsyncMock(return_value=empty_artifacts)
    repo.upsert_artifacts = AsyncMock()
    repo.save_summary = AsyncMock()
    repo.save_questions = AsyncMock()
    repo.set_artifact_status = AsyncMock()
    return repo


@pytest.fixture
def mock_chat_repository() -> MagicMock:
    repo = MagicMock(spec=IChatRepository)
    repo.append_message = AsyncMock()
    repo.get_session_messages = AsyncMock(return_value=[])
    repo.get_latest_user_session = AsyncMock(return_value=[])
    return repo


# ---------------------------------------------------------------------------
# Chat providers
# ---------------------------------------------------------------------------


class FakeChatProvider(IChatProvider):
    """Scripted IChatProvider: fixed reply, optional error, recorded calls."""

    def __init__(
        self,
        name: ProviderName,
        reply: str = "An answer.",
        error: Exception | None = None,
        pieces: list[str] | None = None,
        available: bool = True,
    ) -> None:
        self._name = name
        self._reply = reply
        self._error = error
        self._pieces = pieces if pieces is not None else ["An ", "answer."]
        self._available = available
        self.calls: list[list[ChatMessage]] = []

    async def generate(self, messages: list[ChatMessage]) -> Generation:
        self.calls.append(list(messages))
        if self._error is not None:
            raise self._error
        return Generation(
            content=self._reply,
            model=f"{self._name.value}-model",
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        )

    async def generate_stream(
        self, messages: list[ChatMessage]
    ) -> AsyncGenerator[StreamPiece, None]:
        self.calls.append(list(messages))
        if self._error is not None:
            raise self._error
        for piece in self._pieces:
            yield StreamPiece(content=piece)
        yield StreamPiece(
            usage=TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        )

    def is_fallback_trigger(self, error: BaseException) -> bool:
        return isinstance(error, ProviderLimitError)

    def get_provider_name(self) -> ProviderName:
        return self._name

    def get_model_name(self) -> str:
        return f"{self._name.value}-model"

    def is_available(self) -> bool:
        return self._available


@pytest.fixture
def make_chat_provider():
    """Factory building FakeChatProvider instances."""
    return FakeChatProvider
