"""ChromaDB chunk store adapter.

Wraps ``chromadb`` to implement :class:`IChunkStore`.  All documents share
one collection in cosine space; every chunk carries its ``document_id`` in
metadata and searches are restricted with a ``where`` filter.  Similarity
is reported as ``1 - cosine_distance``.
"""

from __future__ import annotations

import os
from typing import Any

os.environ.setdefault("ANONYMIZED_TELEMETRY", "False")

import chromadb
import structlog

from bookmind.interfaces.chunk_store import IChunkStore
from bookmind.models.rag import DocumentChunk, ScoredChunk
from bookmind.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)


class _PrecomputedEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Keeps ChromaDB from loading its default model; vectors are always
    supplied by the caller."""

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("bookmind always supplies precomputed embeddings")

    def name(self) -> str:
        return "bookmind_precomputed"


class ChromaDBChunkStore(IChunkStore):
    """Chunk store backed by ChromaDB.

    Pass ``client`` to use an in-memory ``chromadb.EphemeralClient`` in tests;
    otherwise a ``PersistentClient`` rooted at *persist_directory* is created.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "bookmind_chunks",
        client: Any | None = None,
    ) -> None:
        self._collection_name = collection_name
        self._client = client or chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=_PrecomputedEmbeddingFunction(),
        )

    # ------------------------------------------------------------------
    # IChunkStore implementation
    # ------------------------------------------------------------------

    async def add_chunks(
        self,
        chunks: list[DocumentChunk],
        embeddings: list[list[float]],
        batch_size: int = 500,
    ) -> int:
        """Upsert pre-embedded chunks in batches of *batch_size*."""
        if len(chunks) != len(embeddings):
            raise RAGError(
                message=(
                    f"chunks and embeddings length mismatch: {len(chunks)} != {len(embeddings)}"
                ),
                provider_name=self.get_provider_name(),
            )
        if not chunks:
            return 0
        try:
            for start in range(0, len(chunks), batch_size):
                batch = chunks[start : start + batch_size]
                self._collection.upsert(
                    ids=[c.chunk_id for c in batch],
                    embeddings=embeddings[start : start + batch_size],
                    documents=[c.text for c in batch],
                    metadatas=[self._chunk_to_metadata(c) for c in batch],
                )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chromadb_chunks_stored", count=len(chunks), document_id=chunks[0].document_id)
        return len(chunks)

    async def query(
        self,
        document_id: str,
        query_embedding: list[float],
        top_k: int,
    ) -> list[ScoredChunk]:
        if top_k <= 0:
            return []
        try:
            available = await self.count(document_id)
            if available == 0:
                return []
            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=min(top_k, available),
                where={"document_id": document_id},
            )
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not results["documents"] or not results["documents"][0]:
            return []
        ids = results["ids"][0]
        documents = results["documents"][0]
        metadatas = results["metadatas"][0] if results["metadatas"] else [{}] * len(documents)
        distances = results["distances"][0] if results["distances"] else [0.0] * len(documents)

        scored = [
            ScoredChunk(
                chunk=self._metadata_to_chunk(chunk_id, meta or {}, text),
                similarity=max(-1.0, min(1.0, 1.0 - distance)),
            )
            for chunk_id, text, meta, distance in zip(
                ids, documents, metadatas, distances, strict=True
            )
        ]
        scored.sort(key=lambda sc: sc.similarity, reverse=True)
        logger.debug(
            "chromadb_query",
            document_id=document_id,
            results_count=len(scored),
            top_score=scored[0].similarity if scored else 0.0,
        )
        return scored

    async def count(self, document_id: str) -> int:
        try:
            found = self._collection.get(where={"document_id": document_id}, include=[])
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return len(found["ids"])

    async def delete_document(self, document_id: str) -> int:
        try:
            found = self._collection.get(where={"document_id": document_id}, include=[])
            ids = found["ids"]
            if ids:
                self._collection.delete(ids=ids)
        except Exception as exc:
            raise RAGError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chromadb_document_deleted", document_id=document_id, chunks=len(ids))
        return len(ids)

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        return self._collection is not None

    # ------------------------------------------------------------------
    # Metadata conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _chunk_to_metadata(chunk: DocumentChunk) -> dict[str, Any]:
        # ChromaDB metadata values must be str/int/float/bool; -1 means "no page".
        return {
            "document_id": chunk.document_id,
            "chunk_index": chunk.chunk_index,
            "token_count": chunk.token_count,
            "page_number": chunk.page_number if chunk.page_number is not None else -1,
        }

    @staticmethod
    def _metadata_to_chunk(chunk_id: str, meta: dict[str, Any], text: str) -> DocumentChunk:
        page = meta.get("page_number", -1)
        return DocumentChunk(
            chunk_id=chunk_id,
            document_id=str(meta.get("document_id", "")),
            chunk_index=int(meta.get("chunk_index", 0)),
            text=text or "",
            token_count=int(meta.get("token_count", 0)),
            page_number=int(page) if page is not None and int(page) > 0 else None,
        )
