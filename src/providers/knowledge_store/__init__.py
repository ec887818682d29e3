"""Knowledge store implementations (documents, chunks, embeddings)."""

from src.providers.knowledge_store.sqlite_knowledge_store import SQLiteKnowledgeStore

__all__ = ["SQLiteKnowledgeStore"]
