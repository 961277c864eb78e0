"""Abstract base class for the embedded-chunk store.

The store holds every document's chunks with their embedding vectors and
answers nearest-neighbour queries restricted to one document.  The
default implementation is ChromaDB with cosine distance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from bookmind.models.rag import DocumentChunk, ScoredChunk


# Concrete implementation: ChromaDBChunkStore
# Located in: bookmind/providers/chunk_store/
class IChunkStore(ABC):
    """Contract for chunk storage and similarity search."""

    @abstractmethod
    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
    ) -> int:
        """Store *chunks* with their *embeddings* (positionally aligned).

        Returns
        -------
        int
            Number of chunks written.

        Raises
        ------
        bookmind.utils.errors.RAGError
            If the lengths differ or the write fails.
        """

    @abstractmethod
    async def query(
        self,
        document_id: str,
        query_embedding: list[float],
        top_k: int,
    ) -> list[ScoredChunk]:
        """Return up to *top_k* chunks of *document_id* nearest the query.

        Results carry ``similarity`` in ``[-1, 1]`` (1 = identical direction)
        and are ordered most similar first.
        """

    @abstractmethod
    async def count(self, document_id: str) -> int:
        """Return the number of stored chunks for *document_id*."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> int:
        """Delete every chunk of *document_id*; return how many were removed."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is initialised and usable."""
