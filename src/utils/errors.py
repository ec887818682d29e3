"""Exception hierarchy for the knowledge base service.

Every application exception inherits from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` naming the external collaborator
(e.g. "openai_embedding", "sqlite") that produced the failure.

    KnowledgeBaseError  (base)
    +-- UnsupportedFormatError    (media type the parser does not handle)
    +-- ParseError                (recognized format, unreadable content)
    +-- QuotaExceededError        (agent already at its document cap)
    +-- NotFoundError             (unknown document id)
    +-- IngestionConflictError    (document already being ingested)
    +-- ConfigurationError        (invalid settings, dimension mismatch)
    +-- EmbeddingError
        +-- EmbeddingTransientError   (retryable)
        |   +-- RateLimitedError
        |   +-- EmbeddingUnavailableError
        +-- EmbeddingFatalError       (never retried)
            +-- InvalidInputError

The ingestion orchestrator retries only ``EmbeddingTransientError``; every
other embedding failure fails the document on the first attempt.
"""


class KnowledgeBaseError(Exception):
    """Base exception for all knowledge base errors.

    ``__str__`` prefixes the provider name in brackets so log lines read
    ``[openai_embedding] Rate limit exceeded``.
    """

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
# Upload gate and parsing
# ---------------------------------------------------------------------------

class UnsupportedFormatError(KnowledgeBaseError):
    """Raised when a media type is not recognized by the document parser."""

    def __init__(
        self,
        message: str = "Unsupported file type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ParseError(KnowledgeBaseError):
    """Raised when a supported file cannot be read (corrupt, encrypted, malformed)."""

    def __init__(
        self,
        message: str = "Document could not be parsed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class QuotaExceededError(KnowledgeBaseError):
    """Raised when an agent already holds its tier's maximum number of documents."""

    def __init__(
        self,
        message: str = "Knowledge document limit reached",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Document lifecycle
# ---------------------------------------------------------------------------

class NotFoundError(KnowledgeBaseError):
    """Raised when an operation references a document that does not exist."""

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class IngestionConflictError(KnowledgeBaseError):
    """Raised when ingestion is requested for a document that is already running."""

    def __init__(
        self,
        message: str = "Document is already being ingested",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid, e.g. an embedding dimension mismatch."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Embedding errors
# ---------------------------------------------------------------------------

class EmbeddingError(KnowledgeBaseError):
    """Raised when the embedding provider fails."""

    def __init__(
        self,
        message: str = "Embedding request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingTransientError(EmbeddingError):
    """Retryable embedding failure (rate limit, timeout, network)."""

    def __init__(
        self,
        message: str = "Transient embedding failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitedError(EmbeddingTransientError):
    """Raised when the embedding provider rejects a call for rate limiting."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingUnavailableError(EmbeddingTransientError):
    """Raised when the embedding provider is unreachable or times out."""

    def __init__(
        self,
        message: str = "Embedding service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingFatalError(EmbeddingError):
    """Non-retryable embedding failure (bad input, authentication)."""

    def __init__(
        self,
        message: str = "Embedding request rejected",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidInputError(EmbeddingFatalError):
    """Raised when the provider rejects the text itself (too long, empty)."""

    def __init__(
        self,
        message: str = "Invalid embedding input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
