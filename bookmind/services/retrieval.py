"""Retrieval engine: similarity search over a document's embedded chunks.

The number of chunks handed to the model adapts to document size.  Small
documents can afford most of their chunks; large ones get a proportion
of their chunks with a hard ceiling so the prompt stays bounded:

=============  ===========================================
total chunks   limit
=============  ===========================================
<= 10          ``min(requested, total)``
11 - 30        ``min(requested, max(5, ceil(.40 t)), 8)``
31 - 100       ``min(requested, max(6, ceil(.25 t)), 10)``
> 100          ``min(requested, max(8, ceil(.15 t)), 15)``
=============  ===========================================
"""

from __future__ import annotations

import asyncio
import math

import structlog

from bookmind.interfaces.chunk_store import IChunkStore
from bookmind.interfaces.embedding_provider import IEmbeddingProvider
from bookmind.models.rag import ScoredChunk
from bookmind.services.chunker import TextChunker
from bookmind.utils.concurrency import throttled_gather

logger = structlog.get_logger(logger_name=__name__)

_EMBED_BATCH_SIZE = 64
_EMBED_CONCURRENCY = 4


def calculate_optimal_limit(total_chunks: int, requested: int | None = None) -> int:
    """Return how many chunks to retrieve for a document with *total_chunks*.

    *requested* defaults to *total_chunks*.  The result never exceeds
    either of them and is never negative.
    """
    total = max(0, total_chunks)
    available = total if requested is None else max(0, requested)
    if total <= 10:
        return min(available, total)
    if total <= 30:
        return min(available, max(5, math.ceil(total * 0.40)), 8)
    if total <= 100:
        return min(available, max(6, math.ceil(total * 0.25)), 10)
    return min(available, max(8, math.ceil(total * 0.15)), 15)


def filter_by_similarity(
    results: list[ScoredChunk], min_similarity: float, limit: int
) -> list[ScoredChunk]:
    """Keep results at or above *min_similarity*, best first, at most *limit*."""
    kept = [r for r in results if r.similarity >= min_similarity]
    kept.sort(key=lambda r: r.similarity, reverse=True)
    return kept[: max(0, limit)]


class RetrievalEngine:
    """Indexes document text into the chunk store and searches it."""

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        chunk_store: IChunkStore,
        chunker: TextChunker | None = None,
        default_min_similarity: float = 0.3,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._chunk_store = chunk_store
        self._chunker = chunker or TextChunker()
        self._default_min_similarity = default_min_similarity

    async def count_chunks(self, document_id: str) -> int:
        return await self._chunk_store.count(document_id)

    async def embed_query(self, text: str) -> list[float]:
        return await self._embedding_provider.embed_single(text)

    async def search(
        self,
        document_id: str,
        query_embedding: list[float],
        limit: int,
        min_similarity: float | None = None,
    ) -> list[ScoredChunk]:
        """Return up to *limit* chunks of *document_id* similar to the query.

        Results are sorted by descending similarity and every result has
        ``similarity >= min_similarity`` (default 0.3).
        """
        threshold = self._default_min_similarity if min_similarity is None else min_similarity
        if limit <= 0:
            return []
        raw = await self._chunk_store.query(document_id, query_embedding, top_k=limit)
        results = filter_by_similarity(raw, threshold, limit)
        logger.info(
            "retrieval_search",
            document_id=document_id,
            limit=limit,
            min_similarity=threshold,
            candidates=len(raw),
            returned=len(results),
        )
        return results

    async def index_document(self, document_id: str, text: str) -> int:
        """Chunk, embed and store *text*, replacing earlier chunks of the document.

        Returns
        -------
        int
            Number of chunks stored.
        """
        chunks = self._chunker.chunk(text, document_id)
        await self._chunk_store.delete_document(document_id)
        if not chunks:
            return 0

        batches = [
            chunks[i : i + _EMBED_BATCH_SIZE] for i in range(0, len(chunks), _EMBED_BATCH_SIZE)
        ]
        vectors_per_batch = await throttled_gather(
            [self._embedding_provider.embed([c.text for c in batch]) for batch in batches],
            semaphore=asyncio.Semaphore(_EMBED_CONCURRENCY),
        )
        embeddings = [vector for batch in vectors_per_batch for vector in batch]
        stored = await self._chunk_store.add_chunks(chunks, embeddings)
        logger.info(
            "document_indexed",
            document_id=document_id,
            chunks=stored,
            embedding_provider=self._embedding_provider.get_provider_name(),
        )
        return stored
