"""Document and precomputed-artifact models.

A :class:`Document` is the persisted record for one ebook or audiobook
reference: where its bytes live, its extracted text once extraction has
succeeded, and the catalog metadata that grounds chat prompts.  The
summary and question artifacts derived from the text live in
:class:`PrecomputedArtifacts`.

All models are frozen; repositories return fresh instances on every read
and callers build updated copies via ``model_copy(update={...})``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ExtractionStatus(str, Enum):  # noqa: UP042
    """Lifecycle of a document's content extraction."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ArtifactStatus(str, Enum):  # noqa: UP042
    """Lifecycle of a derived artifact (summary or question set)."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentType(str, Enum):  # noqa: UP042
    EBOOK = "ebook"
    AUDIOBOOK = "audiobook"


class Document(BaseModel):
    """Persisted record for an uploaded document.

    ``extraction_status`` is ``COMPLETED`` exactly when ``extracted_content``
    and ``content_hash`` are set.  ``content_version`` increases by one on
    every successful extraction.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable document identifier.")
    title: str = Field(default="", description="Display title used in prompts.")
    authors: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    document_type: DocumentType = DocumentType.EBOOK
    file_url: str | None = Field(default=None, description="Primary (possibly proxied) file URL.")
    direct_file_url: str | None = Field(
        default=None, description="Direct download URL, preferred when present."
    )
    extracted_content: str | None = None
    content_hash: str | None = None
    page_count: int | None = Field(default=None, ge=0)
    word_count: int | None = Field(default=None, ge=0)
    size_bytes: int | None = Field(default=None, ge=0)
    extraction_status: ExtractionStatus = ExtractionStatus.PENDING
    content_version: int = Field(default=0, ge=0)
    content_extracted_at: datetime | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.extracted_content)


class ExtractedContent(BaseModel):
    """Output of the content extractor for one set of document bytes."""

    model_config = ConfigDict(frozen=True)

    text: str
    page_count: int = Field(ge=0)
    word_count: int = Field(ge=0)
    content_hash: str = Field(description="SHA-256 hex digest of ``text``.")
    size_bytes: int = Field(ge=0, description="Size of the fetched bytes.")


class QuestionAnswer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)


class PrecomputedArtifacts(BaseModel):
    """Summary and question artifacts generated after extraction.

    ``ai_overview`` and the short ``summary`` are written by catalog
    tooling outside this pipeline; only ``ai_summary`` and ``questions``
    are generated here.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    ai_summary: str | None = None
    ai_overview: str | None = None
    summary: str | None = None
    questions: list[QuestionAnswer] = Field(default_factory=list)
    summary_status: ArtifactStatus = ArtifactStatus.PENDING
    questions_status: ArtifactStatus = ArtifactStatus.PENDING
    summary_generated_at: datetime | None = None
    questions_generated_at: datetime | None = None


class ExtractionSummary(BaseModel):
    """Read-only view of a document's extraction state for status endpoints."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    has_content: bool
    extraction_status: ExtractionStatus
    content_version: int
    word_count: int | None = None
    page_count: int | None = None
    size_bytes: int | None = None
    content_extracted_at: datetime | None = None
