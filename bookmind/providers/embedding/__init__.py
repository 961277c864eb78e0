"""Embedding provider implementations.

Two implementations of IEmbeddingProvider:
    - GeminiEmbeddingProvider  -- Gemini ``batchEmbedContents`` (default)
    - OpenAIEmbeddingProvider  -- any OpenAI-compatible ``/embeddings`` endpoint

``bookmind.main`` picks one from ``EMBEDDING_PROVIDER``; the same provider
must be used for indexing and querying.
"""

from bookmind.providers.embedding.gemini_embedding_provider import GeminiEmbeddingProvider
from bookmind.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["GeminiEmbeddingProvider", "OpenAIEmbeddingProvider"]
