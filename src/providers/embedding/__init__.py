"""Embedding provider implementations.

Embeddings turn chunk text and search queries into fixed-length vectors
compared by cosine similarity in the knowledge store.

    OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims) or any
                               OpenAI-compatible endpoint.
"""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
