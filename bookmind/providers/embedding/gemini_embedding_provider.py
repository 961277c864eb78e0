"""Gemini embedding provider adapter.

Calls ``models/{model}:batchEmbedContents`` over ``httpx``.  The API
accepts at most 100 requests per batch, so larger inputs are split.
"""

from __future__ import annotations

import httpx
import structlog

from bookmind.config.settings import Settings
from bookmind.interfaces.embedding_provider import IEmbeddingProvider
from bookmind.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

_GEMINI_BATCH_LIMIT = 100


class GeminiEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the Gemini REST API."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._api_key = settings.gemini_api_key
        self._model = settings.gemini_embedding_model
        self._base_url = settings.gemini_base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        url = f"{self._base_url}/models/{self._model}:batchEmbedContents"
        model_ref = f"models/{self._model}"
        vectors: list[list[float]] = []
        for start in range(0, len(texts), _GEMINI_BATCH_LIMIT):
            batch = texts[start : start + _GEMINI_BATCH_LIMIT]
            body = {
                "requests": [
                    {"model": model_ref, "content": {"parts": [{"text": t}]}} for t in batch
                ]
            }
            try:
                response = await self._client.post(url, params={"key": self._api_key}, json=body)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise RAGError(
                    message=f"Gemini embedding request failed: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            try:
                embeddings = response.json().get("embeddings") or []
                batch_vectors = [list(item["values"]) for item in embeddings]
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                raise RAGError(
                    message=f"Gemini embedding response is malformed: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            if len(embeddings) != len(batch):
                raise RAGError(
                    message=(
                        f"Gemini returned {len(embeddings)} embeddings for {len(batch)} inputs"
                    ),
                    provider_name=self.get_provider_name(),
                )
            vectors.extend(batch_vectors)
            logger.info("gemini_embedding_batch", model=self._model, batch_size=len(batch))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        return result[0]

    def get_provider_name(self) -> str:
        return f"gemini-{self._model}"

    def is_available(self) -> bool:
        return bool(self._api_key)
