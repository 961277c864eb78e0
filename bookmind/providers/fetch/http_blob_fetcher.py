"""HTTP blob fetcher.

Downloads document bytes with ``httpx``.  The whole download (connect,
headers and body) is bounded by one deadline; exceeding it cancels the
request and raises :class:`ExtractionTimeoutError`.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from bookmind.interfaces.blob_fetcher import IBlobFetcher
from bookmind.utils.errors import DocumentFetchError, ExtractionTimeoutError

logger = structlog.get_logger(logger_name=__name__)

_USER_AGENT = "bookmind-extractor/0.1"


class HttpBlobFetcher(IBlobFetcher):
    def __init__(
        self,
        timeout_seconds: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout_seconds
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
        )

    async def fetch(self, url: str) -> bytes:
        logger.info("fetch_started", url=url, timeout=self._timeout)
        try:
            response = await asyncio.wait_for(
                self._client.get(url, timeout=self._timeout), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            raise ExtractionTimeoutError(
                message=f"Fetching {url} timed out after {self._timeout:g}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.TimeoutException as exc:
            raise ExtractionTimeoutError(
                message=f"Fetching {url} timed out after {self._timeout:g}s",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise DocumentFetchError(
                message=f"Failed to fetch {url}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code >= 400:
            raise DocumentFetchError(
                message=f"Failed to fetch {url}: HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
                status_code=response.status_code,
            )
        logger.info("fetch_completed", url=url, size_bytes=len(response.content))
        return response.content

    def get_provider_name(self) -> str:
        return "http"

    async def aclose(self) -> None:
        await self._client.aclose()
