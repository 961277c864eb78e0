"""Abstract persistence contracts for documents and chat transcripts.

Documents are written by exactly one extraction job at a time (jobs are
keyed by document id), so implementations only need per-statement
atomicity; ``save_extracted_content`` must increment the version in the
same statement that stores the text.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from bookmind.models.chat import Role, StoredMessage
from bookmind.models.document import (
    ArtifactStatus,
    Document,
    ExtractedContent,
    PrecomputedArtifacts,
    QuestionAnswer,
)


# Concrete implementation: SQLiteDocumentRepository (bookmind/providers/storage/)
class IDocumentRepository(ABC):
    """Contract for the document record and its precomputed artifacts."""

    @abstractmethod
    async def get(self, document_id: str) -> Document | None:
        """Return the document, or ``None`` if it does not exist."""

    @abstractmethod
    async def upsert(self, document: Document) -> None:
        """Insert or replace catalog fields (title, authors, URLs, ...).

        Extraction fields of an existing record are left untouched.
        """

    @abstractmethod
    async def mark_processing(self, document_id: str) -> None:
        """Set ``extraction_status`` to ``processing``."""

    @abstractmethod
    async def save_extracted_content(self, document_id: str, content: ExtractedContent) -> int:
        """Persist extracted text, mark ``completed`` and bump the version.

        Returns
        -------
        int
            The new ``content_version``.

        Raises
        ------
        bookmind.utils.errors.DocumentNotFoundError
            If *document_id* does not exist.
        """

    @abstractmethod
    async def mark_extraction_failed(self, document_id: str) -> None:
        """Set ``extraction_status`` to ``failed`` and any pending artifact
        status to ``failed``."""

    @abstractmethod
    async def get_artifacts(self, document_id: str) -> PrecomputedArtifacts:
        """Return the document's artifacts (empty defaults if none exist)."""

    @abstractmethod
    async def upsert_artifacts(self, artifacts: PrecomputedArtifacts) -> None:
        """Replace all artifact fields of ``artifacts.document_id``.

        Used by catalog tooling to load curated overviews and summaries.
        """

    @abstractmethod
    async def save_summary(self, document_id: str, summary: str) -> None:
        """Store the generated summary and mark its status ``completed``."""

    @abstractmethod
    async def save_questions(self, document_id: str, questions: list[QuestionAnswer]) -> None:
        """Store generated questions and mark their status ``completed``."""

    @abstractmethod
    async def set_artifact_status(
        self,
        document_id: str,
        summary_status: ArtifactStatus | None = None,
        questions_status: ArtifactStatus | None = None,
    ) -> None:
        """Update one or both artifact statuses."""


# Concrete implementation: SQLiteChatRepository (bookmind/providers/storage/)
class IChatRepository(ABC):
    """Append-only store of chat session transcripts."""

    @abstractmethod
    async def append_message(
        self,
        session_id: str,
        document_id: str,
        role: Role,
        content: str,
        user_id: str | None = None,
    ) -> StoredMessage:
        """Append a message at the next index of *session_id*."""

    @abstractmethod
    async def get_session_messages(self, session_id: str) -> list[StoredMessage]:
        """Return the session transcript in append order."""

    @abstractmethod
    async def get_latest_user_session(
        self, document_id: str, user_id: str
    ) -> list[StoredMessage]:
        """Return the most recently active session of *user_id* on
        *document_id*, or an empty list."""
