"""Chunk store implementations."""

from bookmind.providers.chunk_store.chromadb_chunk_store import ChromaDBChunkStore

__all__ = ["ChromaDBChunkStore"]
