"""Abstract contracts implemented by the adapters under ``bookmind.providers``."""

from bookmind.interfaces.blob_fetcher import IBlobFetcher
from bookmind.interfaces.chunk_store import IChunkStore
from bookmind.interfaces.embedding_provider import IEmbeddingProvider
from bookmind.interfaces.llm_provider import IChatProvider, StreamPiece
from bookmind.interfaces.repositories import IChatRepository, IDocumentRepository

__all__ = [
    "IBlobFetcher",
    "IChatProvider",
    "IChatRepository",
    "IChunkStore",
    "IDocumentRepository",
    "IEmbeddingProvider",
    "StreamPiece",
]
