"""Abstract base class for knowledge document and chunk persistence.

The store owns Documents and their Chunks (text, vector, metadata).  It
does not enforce per-agent quotas; the ingestion orchestrator's entry gate
does that using :meth:`IKnowledgeStoreProvider.count_documents`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from src.models.knowledge import Chunk, Document, KnowledgeStats


@dataclass(frozen=True)
class SearchCandidate:
    """A retrievable chunk joined with the parent fields ranking needs."""

    chunk: Chunk
    filename: str
    document_created_at: datetime


# Concrete implementations:
#   SQLiteKnowledgeStore -- aiosqlite, embeddings as JSON arrays
# Located in: src/providers/knowledge_store/
class IKnowledgeStoreProvider(ABC):
    """Contract for document/chunk persistence backends."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a new document row and return it unchanged."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document with *document_id*, or ``None``."""

    @abstractmethod
    async def list_documents(self, agent_id: str) -> list[Document]:
        """Return every document of *agent_id*, newest first."""

    @abstractmethod
    async def count_documents(self, agent_id: str) -> int:
        """Return how many documents *agent_id* holds, in any status."""

    @abstractmethod
    async def mark_ready(self, document_id: str, chunks: list[Chunk]) -> bool:
        """Persist *chunks* and flip the document to ``ready`` atomically.

        Both happen in one transaction and only while the document still
        exists with ``status=processing``.

        Returns
        -------
        bool
            ``False`` if the document was deleted (or already left
            ``processing``) in the meantime; nothing is written then.
        """

    @abstractmethod
    async def mark_error(self, document_id: str, message: str) -> bool:
        """Flip a processing document to ``error`` with *message*.

        Returns ``False`` if the document no longer exists or already
        reached a terminal status.
        """

    @abstractmethod
    async def fail_processing_documents(self, message: str) -> int:
        """Flip every ``processing`` document to ``error`` with *message*.

        Run at startup: no ingestion task survives a restart, so documents
        still processing at that point can never complete.  Returns the
        number of documents updated.
        """

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and, by cascade, all of its chunks.

        Returns ``True`` if a row was deleted.
        """

    @abstractmethod
    async def get_chunks(self, document_id: str) -> list[Chunk]:
        """Return the chunks of one document ordered by ``chunk_index``."""

    @abstractmethod
    async def get_search_candidates(self, agent_id: str) -> list[SearchCandidate]:
        """Return embedded chunks of the agent's ``ready`` documents."""

    @abstractmethod
    async def get_stats(self, agent_id: str) -> KnowledgeStats:
        """Return document, chunk and token totals over ready documents."""
