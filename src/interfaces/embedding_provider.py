"""Abstract base class for text-embedding providers.

The ingestion pipeline and the retrieval service see embeddings only
through this contract, so the backing model or vendor can be swapped as
long as the vector dimensionality stays fixed for an existing store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider  -- text-embedding-3-small or any
#                               OpenAI-compatible endpoint
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services.

    Failures must be raised as the typed errors from
    :mod:`src.utils.errors` so the ingestion orchestrator can decide
    whether to retry:

    * :class:`~src.utils.errors.RateLimitedError` and
      :class:`~src.utils.errors.EmbeddingUnavailableError` are transient.
    * :class:`~src.utils.errors.InvalidInputError` (and any other
      :class:`~src.utils.errors.EmbeddingFatalError`) is not retried.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations split the
            input internally if the underlying API has a per-call limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        src.utils.errors.EmbeddingTransientError
            On rate limiting, timeouts or an unreachable service.
        src.utils.errors.EmbeddingFatalError
            When the provider rejects the input or the credentials.
        src.utils.errors.ConfigurationError
            When the returned vectors do not have the configured dimension.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Convenience wrapper around :meth:`embed`, used for chunk-by-chunk
        ingestion and for search queries.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Constant for the lifetime of the provider, e.g. ``1536`` for
        ``text-embedding-3-small``.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"openai_embedding"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has the credentials it needs.

        Must not make a network call.
        """
