"""Chunk models for the retrieval layer.

Documents are split into :class:`DocumentChunk` windows by
``bookmind.services.chunker``, embedded, and stored in the chunk store.
Searches return :class:`ScoredChunk` instances whose ``similarity`` is
computed at query time and never persisted.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class DocumentChunk(BaseModel):
    """A chunk of document text, ready for embedding and storage."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str = Field(description="Unique identifier for this chunk.")
    document_id: str
    chunk_index: int = Field(ge=0, description="Position of the chunk within the document.")
    text: str
    token_count: int = Field(default=0, ge=0)
    page_number: int | None = Field(default=None, ge=1)


class ScoredChunk(BaseModel):
    """A chunk returned from a similarity search."""

    model_config = ConfigDict(frozen=True)

    chunk: DocumentChunk
    similarity: float = Field(ge=-1.0, le=1.0)
