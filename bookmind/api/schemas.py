"""Pydantic request/response schemas for the bookmind API.

Request schemas end with ``Request`` and response schemas with
``Response``.  Streaming chat has no response model; its server-sent
event frames are described by the ``*Frame`` models below.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from bookmind.models.chat import ChatMessage, ContextMethod, ProviderName, TokenUsage
from bookmind.models.document import ExtractionStatus
from bookmind.models.job import JobState


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class ExtractRequest(BaseModel):
    """Optional URL overrides; the document record's URLs are used otherwise.

    ``force`` re-extracts a document whose extraction already completed.
    """

    file_url: str | None = None
    direct_file_url: str | None = None
    force: bool = False


class ExtractResponse(BaseModel):
    document_id: str
    queued: bool
    job_id: str | None = None
    state: JobState | None = None
    word_count: int | None = None
    page_count: int | None = None
    size_bytes: int | None = None
    version: int | None = None
    already_extracted: bool = False


class ExtractionStatusResponse(BaseModel):
    document_id: str
    has_content: bool
    extraction_status: ExtractionStatus
    content_version: int
    word_count: int | None = None
    page_count: int | None = None
    size_bytes: int | None = None
    content_extracted_at: datetime | None = None


class JobStatusResponse(BaseModel):
    job_id: str
    state: JobState
    progress: int = Field(ge=0, le=100)
    attempts: int
    result: dict[str, Any] | None = None
    failure_reason: str | None = None


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class ChatRequestBody(BaseModel):
    """A user question about a document."""

    question: str = Field(min_length=1, max_length=4000)
    session_id: str | None = None
    user_id: str | None = None
    history: list[ChatMessage] = Field(
        default_factory=list,
        description="Prior turns supplied by the client; overrides the stored session.",
    )


class ChatResponse(BaseModel):
    text: str
    provider: ProviderName
    model: str
    method: ContextMethod
    usage: TokenUsage
    session_id: str


class StartFrame(BaseModel):
    session_id: str


class ChunkFrame(BaseModel):
    content: str
    provider: ProviderName


class DoneFrame(BaseModel):
    full_text: str
    usage: TokenUsage
    provider: ProviderName
    model: str
    method: ContextMethod


class ErrorFrame(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]
