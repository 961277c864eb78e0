"""Content extractor: document URL -> plain text with counts and a content hash.

URL resolution follows a fixed preference:

1. the direct download URL, when the document has one;
2. for primary URLs on a proxied host (Google Drive by default), the
   internal proxy endpoint ``{proxy_base}/api/proxy/pdf?url=<quoted>``;
3. the primary URL as-is.

Fetch failures and timeouts surface as retryable extraction errors; bytes
that cannot be parsed surface as :class:`ContentParseError`.
"""

from __future__ import annotations

import hashlib
from urllib.parse import quote, urlparse

import structlog

from bookmind.interfaces.blob_fetcher import IBlobFetcher
from bookmind.models.document import ExtractedContent
from bookmind.services.document_parsers import parse_document
from bookmind.utils.errors import ContentParseError
from bookmind.utils.text import count_words

logger = structlog.get_logger(logger_name=__name__)


def content_hash(text: str) -> str:
    """SHA-256 hex digest of *text* encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class ContentExtractor:
    """Fetches a document's bytes and extracts its text."""

    def __init__(
        self,
        fetcher: IBlobFetcher,
        proxy_base_url: str = "",
        proxied_hosts: list[str] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxied_hosts = [h.lower() for h in (proxied_hosts or ["drive.google.com"])]

    def resolve_url(self, file_url: str | None, direct_file_url: str | None = None) -> str:
        """Pick the URL to download from (see module docstring for the order)."""
        if direct_file_url:
            return direct_file_url
        if not file_url:
            raise ContentParseError(message="Document has no file URL")
        host = (urlparse(file_url).hostname or "").lower()
        if self._proxy_base_url and any(
            host == h or host.endswith(f".{h}") for h in self._proxied_hosts
        ):
            return f"{self._proxy_base_url}/api/proxy/pdf?url={quote(file_url, safe='')}"
        return file_url

    async def extract(
        self, file_url: str | None, direct_file_url: str | None = None
    ) -> ExtractedContent:
        """Download and parse a document.

        Parameters
        ----------
        file_url:
            Primary (possibly proxied) file URL.
        direct_file_url:
            Direct download URL; preferred when present.

        Returns
        -------
        ExtractedContent
            Text, page and word counts, SHA-256 of the text and fetched size.

        Raises
        ------
        bookmind.utils.errors.ExtractionTimeoutError
            The download exceeded the fetcher's deadline.
        bookmind.utils.errors.DocumentFetchError
            The download failed.
        bookmind.utils.errors.ContentParseError
            The bytes are corrupt or in an unsupported format.
        """
        url = self.resolve_url(file_url, direct_file_url)
        data = await self._fetcher.fetch(url)
        parsed = parse_document(data)

        result = ExtractedContent(
            text=parsed.text,
            page_count=parsed.page_count,
            word_count=count_words(parsed.text),
            content_hash=content_hash(parsed.text),
            size_bytes=len(data),
        )
        logger.info(
            "content_extracted",
            url=url,
            format=parsed.format,
            pages=result.page_count,
            words=result.word_count,
            size_bytes=result.size_bytes,
            content_hash=result.content_hash[:12],
        )
        return result
