"""Custom exception hierarchy for bookmind.

All application exceptions inherit from :class:`BookmindError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "zhipu", "gemini", "chromadb") caused the failure.

The hierarchy is organized by pipeline domain:

    BookmindError  (base -- catch-all for any bookmind error)
    +-- ContentExtractionError   (fetching / parsing a document)
    |   +-- DocumentFetchError       (network failure, retryable)
    |   +-- ExtractionTimeoutError   (fetch exceeded its deadline, retryable)
    |   +-- ContentParseError        (corrupt / unsupported bytes, terminal)
    +-- LLMError                 (any generation call failure)
    |   +-- ProviderLimitError       (quota / rate limit, triggers failover)
    |   +-- ProviderExhaustedError   (every provider in the chain failed)
    +-- ArtifactGenerationError  (summary / question generation)
    +-- RAGError                 (embedding or chunk-store failure)
    +-- JobQueueError            (queue backend unavailable)
    +-- DocumentNotFoundError    (unknown document id)
    +-- ConfigurationError       (startup / missing config)

Extraction errors expose ``retryable`` so the job queue can decide
between backing off and failing the job outright.
"""


class BookmindError(Exception):
    """Base exception for all bookmind errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for
    structured log output, e.g. ``[gemini] Quota exceeded``.
    """

    retryable: bool = True

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Content extraction errors
# ---------------------------------------------------------------------------

class ContentExtractionError(BookmindError):
    """Raised when a document's content cannot be extracted."""

    def __init__(
        self,
        message: str = "Content extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentFetchError(ContentExtractionError):
    """Raised when the document bytes cannot be downloaded."""

    def __init__(
        self,
        message: str = "Failed to fetch document",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class ExtractionTimeoutError(ContentExtractionError):
    """Raised when fetching a document exceeds the configured deadline."""

    def __init__(
        self,
        message: str = "Document fetch timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ContentParseError(ContentExtractionError):
    """Raised when the fetched bytes are corrupt or in an unsupported format.

    Retrying the same bytes cannot succeed, so the job queue fails the
    job immediately unless configured otherwise.
    """

    retryable = False

    def __init__(
        self,
        message: str = "Document content could not be parsed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Generation provider errors
# ---------------------------------------------------------------------------

class LLMError(BookmindError):
    """Raised when a generation call fails or returns an unusable response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderLimitError(LLMError):
    """Raised when a provider reports quota exhaustion or rate limiting.

    The chat orchestrator catches this to move on to the next provider
    in the configured order.
    """

    def __init__(
        self,
        message: str = "Provider quota or rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderExhaustedError(LLMError):
    """Raised when every provider in the failover chain has failed.

    ``errors`` maps each attempted provider to the exception it raised,
    in attempt order.
    """

    def __init__(
        self,
        message: str = "All AI providers are unavailable",
        errors: dict[str, Exception] | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=None)
        self._errors = dict(errors or {})

    @property
    def errors(self) -> dict[str, Exception]:
        return dict(self._errors)


class ArtifactGenerationError(BookmindError):
    """Raised when a summary or question set cannot be generated."""

    def __init__(
        self,
        message: str = "Artifact generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# RAG / storage / orchestration errors
# ---------------------------------------------------------------------------

class RAGError(BookmindError):
    """Raised when a retrieval operation fails (embedding or chunk store)."""

    def __init__(
        self,
        message: str = "RAG pipeline operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobQueueError(BookmindError):
    """Raised when the background job queue cannot accept work."""

    def __init__(
        self,
        message: str = "Job queue is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentNotFoundError(BookmindError):
    """Raised when an operation references an unknown document id."""

    retryable = False

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(BookmindError):
    """Raised when configuration is invalid or missing at startup."""

    retryable = False

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
