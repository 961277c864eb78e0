"""Abstract base class for text-embedding service providers.

Implementations wrap Gemini's ``embedContent`` endpoint or any
OpenAI-compatible ``/embeddings`` endpoint.  Chunk indexing and query-time
retrieval must use the same provider so vectors are comparable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: GeminiEmbeddingProvider, OpenAIEmbeddingProvider
# Located in: bookmind/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the retrieval layer."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations handle
            batching internally if the underlying API has a per-call limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        bookmind.utils.errors.RAGError
            If the embedding API call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text (e.g. a question)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"gemini-text-embedding-004"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured."""
