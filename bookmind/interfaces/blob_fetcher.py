"""Abstract base class for fetching raw document bytes by URL."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: HttpBlobFetcher (bookmind/providers/fetch/)
class IBlobFetcher(ABC):
    @abstractmethod
    async def fetch(self, url: str) -> bytes:
        """Download *url* and return its body.

        Raises
        ------
        bookmind.utils.errors.ExtractionTimeoutError
            If the download does not complete within the configured timeout.
        bookmind.utils.errors.DocumentFetchError
            On a non-success status or a transport failure.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this fetcher."""
