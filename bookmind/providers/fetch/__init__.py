"""Document byte fetchers."""

from bookmind.providers.fetch.http_blob_fetcher import HttpBlobFetcher

__all__ = ["HttpBlobFetcher"]
