"""Utility modules for bookmind.

- **errors** -- Domain exception hierarchy rooted at BookmindError; each
  pipeline stage raises its own subclass so callers can handle failures
  without broad ``except Exception`` blocks.
- **concurrency** -- semaphore-bounded gather and the token-bucket limiter
  the job queue uses to pace job starts.
- **logging** -- structlog setup with console output in development and
  JSON in production.
"""

from bookmind.utils.concurrency import TokenBucket, throttled_gather
from bookmind.utils.errors import (
    ArtifactGenerationError,
    BookmindError,
    ConfigurationError,
    ContentExtractionError,
    ContentParseError,
    DocumentFetchError,
    DocumentNotFoundError,
    ExtractionTimeoutError,
    JobQueueError,
    LLMError,
    ProviderExhaustedError,
    ProviderLimitError,
    RAGError,
)
from bookmind.utils.logging import configure_logging, get_logger

__all__ = [
    "ArtifactGenerationError",
    "BookmindError",
    "ConfigurationError",
    "ContentExtractionError",
    "ContentParseError",
    "DocumentFetchError",
    "DocumentNotFoundError",
    "ExtractionTimeoutError",
    "JobQueueError",
    "LLMError",
    "ProviderExhaustedError",
    "ProviderLimitError",
    "RAGError",
    "TokenBucket",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
