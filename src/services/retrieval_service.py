"""Semantic search over an agent's knowledge base.

Embeds the query with the same provider used at ingestion time and ranks
every embedded chunk of the agent's ``ready`` documents by cosine
similarity.  Ties are broken by ascending ``chunk_index``, then by the
parent document's creation time, so identical inputs always produce the
same ordering.

:func:`build_rag_context` renders results as a numbered, cited block for
the conversational layer to interpolate into its prompt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
import structlog

from src.models.knowledge import SearchResult
from src.utils.errors import ConfigurationError

if TYPE_CHECKING:
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.interfaces.knowledge_store_provider import IKnowledgeStoreProvider

logger = structlog.get_logger(logger_name=__name__)

RAG_CONTEXT_HEADER = "[Relevant documents]"


class RetrievalService:
    """Top-K cosine-similarity search scoped to one agent.

    Parameters
    ----------
    store:
        Source of search candidates.
    embedding_provider:
        Embeds the query; must match the provider used for ingestion.
    default_top_k:
        Result count when the caller does not ask for one.
    max_top_k:
        Hard cap on the result count.
    """

    def __init__(
        self,
        store: IKnowledgeStoreProvider,
        embedding_provider: IEmbeddingProvider,
        default_top_k: int = 5,
        max_top_k: int = 20,
    ) -> None:
        self._store = store
        self._embedding_provider = embedding_provider
        self._default_top_k = default_top_k
        self._max_top_k = max_top_k

    async def search(
        self,
        agent_id: str,
        query: str,
        top_k: int | None = None,
    ) -> list[SearchResult]:
        """Return the ``top_k`` chunks most similar to *query*.

        Parameters
        ----------
        agent_id:
            Agent whose knowledge base is searched.
        query:
            Free-text query.  A blank query returns no results.
        top_k:
            Number of results; values below 1 fall back to the default and
            values above the cap are clamped.

        Returns
        -------
        list[SearchResult]
            Best match first.  Empty when the agent has no searchable chunks.

        Raises
        ------
        src.utils.errors.EmbeddingError
            If embedding the query fails.
        src.utils.errors.ConfigurationError
            If stored vectors and the query vector differ in dimension.
        """
        query = query.strip()
        if not query:
            return []
        limit = self._resolve_top_k(top_k)

        candidates = await self._store.get_search_candidates(agent_id)
        if not candidates:
            logger.debug("knowledge_search_empty", agent_id=agent_id)
            return []

        query_vector = np.asarray(
            await self._embedding_provider.embed_single(query), dtype=np.float64
        )
        dimension = query_vector.shape[0]
        for candidate in candidates:
            if len(candidate.chunk.embedding or ()) != dimension:
                raise ConfigurationError(
                    message=(
                        f"Stored chunk {candidate.chunk.id} has "
                        f"{len(candidate.chunk.embedding or ())} dimensions, query has "
                        f"{dimension}; re-ingest after changing the embedding model"
                    ),
                    provider_name=self._embedding_provider.get_provider_name(),
                )

        matrix = np.asarray([c.chunk.embedding for c in candidates], dtype=np.float64)
        scores = cosine_similarities(matrix, query_vector)

        order = sorted(
            range(len(candidates)),
            key=lambda i: (
                -scores[i],
                candidates[i].chunk.chunk_index,
                candidates[i].document_created_at,
                candidates[i].chunk.document_id,
            ),
        )

        results = [
            SearchResult(
                chunk_id=candidates[i].chunk.id,
                document_id=candidates[i].chunk.document_id,
                filename=candidates[i].filename,
                content=candidates[i].chunk.content,
                chunk_index=candidates[i].chunk.chunk_index,
                score=float(scores[i]),
                metadata=candidates[i].chunk.metadata,
            )
            for i in order[:limit]
        ]

        logger.info(
            "knowledge_search",
            agent_id=agent_id,
            candidates=len(candidates),
            returned=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    def _resolve_top_k(self, top_k: int | None) -> int:
        if top_k is None or top_k < 1:
            top_k = self._default_top_k
        return min(top_k, self._max_top_k)


def cosine_similarities(matrix: np.ndarray, vector: np.ndarray) -> np.ndarray:
    """Cosine similarity of each row of *matrix* with *vector*.

    Rows (or a query) with zero norm score ``0.0`` instead of NaN.
    """
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
    dots = matrix @ vector
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)


def build_rag_context(results: list[SearchResult]) -> str:
    """Render search results as a numbered, cited context block.

    Each entry reads ``"{n}. {content}\\n   (source: {source}[, page N])"``;
    entries are separated by a blank line under :data:`RAG_CONTEXT_HEADER`.
    Returns ``""`` for no results.
    """
    if not results:
        return ""

    lines = []
    for number, result in enumerate(results, start=1):
        source = result.metadata.source or result.filename
        page = f", page {result.metadata.page}" if result.metadata.page else ""
        lines.append(f"{number}. {result.content}\n   (source: {source}{page})")

    return f"{RAG_CONTEXT_HEADER}\n" + "\n\n".join(lines)
