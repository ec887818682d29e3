"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Works against api.openai.com or any OpenAI-compatible endpoint configured
through ``openai_base_url``.

SDK exceptions are translated into the typed embedding errors:

    openai.RateLimitError                       -> RateLimitedError (transient)
    APITimeoutError / APIConnectionError / 5xx  -> EmbeddingUnavailableError (transient)
    BadRequestError / UnprocessableEntityError  -> InvalidInputError (fatal)
    AuthenticationError / PermissionDeniedError -> EmbeddingFatalError
"""

from __future__ import annotations

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    EmbeddingFatalError,
    EmbeddingUnavailableError,
    InvalidInputError,
    RateLimitedError,
)

logger = structlog.get_logger(logger_name=__name__)

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Models that accept an explicit ``dimensions`` request parameter.
_SHORTENABLE_MODELS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default and sends at
    most ``embedding_batch_size`` inputs per request.  Every returned
    vector is checked against the configured dimension.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key or "unset", "max_retries": 0}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        # Retries are owned by the ingestion orchestrator, not the SDK.
        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = settings.embedding_dimension or _MODEL_DIMENSIONS.get(self._model, 1536)
        self._batch_size = max(1, settings.embedding_batch_size)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

        native = _MODEL_DIMENSIONS.get(self._model)
        if native is not None and self._dimension > native:
            raise ConfigurationError(
                message=(
                    f"Embedding dimension {self._dimension} exceeds the "
                    f"{native} dimensions of {self._model}"
                ),
                provider_name=self._provider_label,
            )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts."""
        if not texts:
            return []

        all_embeddings: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            response = await self._create(batch)
            # The API may return items out of order; ``index`` is authoritative.
            ordered = sorted(response.data, key=lambda item: item.index)
            batch_embeddings = [list(item.embedding) for item in ordered]
            self._check_dimensions(batch_embeddings)
            all_embeddings.extend(batch_embeddings)
            logger.debug(
                "openai_embedding_batch",
                model=self._model,
                provider=self._provider_label,
                batch_size=len(batch),
                tokens=response.usage.total_tokens if response.usage else None,
            )
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _create(self, batch: list[str]):  # noqa: ANN202
        if not self._api_key:
            raise EmbeddingFatalError(
                message="OPENAI_API_KEY is not configured",
                provider_name=self._provider_label,
            )

        request: dict = {"input": batch, "model": self._model}
        if self._model in _SHORTENABLE_MODELS and self._dimension != _MODEL_DIMENSIONS[self._model]:
            request["dimensions"] = self._dimension

        try:
            return await self._client.embeddings.create(**request)
        except openai.RateLimitError as exc:
            raise RateLimitedError(
                message=f"{self._provider_label} rate limited: {exc}",
                provider_name=self._provider_label,
            ) from exc
        except (openai.APITimeoutError, openai.APIConnectionError, openai.InternalServerError) as exc:
            raise EmbeddingUnavailableError(
                message=f"{self._provider_label} unavailable: {exc}",
                provider_name=self._provider_label,
            ) from exc
        except (openai.BadRequestError, openai.UnprocessableEntityError) as exc:
            raise InvalidInputError(
                message=f"{self._provider_label} rejected input: {exc}",
                provider_name=self._provider_label,
            ) from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise EmbeddingFatalError(
                message=f"{self._provider_label} authentication failed: {exc}",
                provider_name=self._provider_label,
            ) from exc
        except openai.APIError as exc:
            raise EmbeddingError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self._provider_label,
            ) from exc

    def _check_dimensions(self, vectors: list[list[float]]) -> None:
        for vector in vectors:
            if len(vector) != self._dimension:
                raise ConfigurationError(
                    message=(
                        f"{self._model} returned {len(vector)}-dimensional vectors, "
                        f"expected {self._dimension}"
                    ),
                    provider_name=self._provider_label,
                )
