"""Pydantic v2 models shared across bookmind layers."""

from bookmind.models.chat import (
    AssembledContext,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ContextMethod,
    Generation,
    ProviderName,
    Role,
    StoredMessage,
    StreamDelta,
    TokenUsage,
)
from bookmind.models.document import (
    ArtifactStatus,
    Document,
    DocumentType,
    ExtractedContent,
    ExtractionStatus,
    ExtractionSummary,
    PrecomputedArtifacts,
    QuestionAnswer,
)
from bookmind.models.job import (
    ExtractionPayload,
    ExtractionRequestResult,
    Job,
    JobState,
    JobStatus,
)
from bookmind.models.rag import DocumentChunk, ScoredChunk

__all__ = [
    "ArtifactStatus",
    "AssembledContext",
    "ChatMessage",
    "ChatRequest",
    "ChatResult",
    "ContextMethod",
    "Document",
    "DocumentChunk",
    "DocumentType",
    "ExtractedContent",
    "ExtractionPayload",
    "ExtractionRequestResult",
    "ExtractionStatus",
    "ExtractionSummary",
    "Generation",
    "Job",
    "JobState",
    "JobStatus",
    "PrecomputedArtifacts",
    "ProviderName",
    "QuestionAnswer",
    "Role",
    "ScoredChunk",
    "StoredMessage",
    "StreamDelta",
    "TokenUsage",
]
