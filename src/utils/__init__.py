"""Utility modules for the knowledge base service.

- **errors** -- Exception hierarchy rooted at KnowledgeBaseError; the
  embedding branch splits into transient (retried) and fatal errors.
- **concurrency** -- semaphore-bounded gather and the timeout/retry helper
  used for embedding calls.
- **logging** -- structlog setup with coloured console output in
  development and JSON in production.
"""

# -- Exception hierarchy ---------------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    EmbeddingFatalError,
    EmbeddingTransientError,
    EmbeddingUnavailableError,
    IngestionConflictError,
    InvalidInputError,
    KnowledgeBaseError,
    NotFoundError,
    ParseError,
    QuotaExceededError,
    RateLimitedError,
    UnsupportedFormatError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import call_with_retry, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingFatalError",
    "EmbeddingTransientError",
    "EmbeddingUnavailableError",
    "IngestionConflictError",
    "InvalidInputError",
    "KnowledgeBaseError",
    "NotFoundError",
    "ParseError",
    "QuotaExceededError",
    "RateLimitedError",
    "UnsupportedFormatError",
    "call_with_retry",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
