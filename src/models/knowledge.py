"""Data models for agent knowledge bases.

Pydantic v2 models for uploaded documents, their embedded chunks, parser
and chunker output, search results, and per-agent statistics.  All models
are frozen; state changes produce new instances via ``model_copy``.

Lifecycle overview:

    1. UPLOAD: a :class:`Document` is created with ``status=processing``.
    2. PARSE: the file becomes a :class:`ParsedDocument` (plain text).
    3. CHUNK: the text is split into :class:`TextChunk` segments.
    4. EMBED + STORE: each segment becomes a persisted :class:`Chunk`
       with an embedding vector, and the document flips to ``ready``.
    5. SEARCH: chunks of ready documents are scored against a query and
       returned as :class:`SearchResult` objects for citation.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    """Ingestion lifecycle states.  ``ready`` and ``error`` are terminal."""

    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Document -- one uploaded file attached to an agent.
# ---------------------------------------------------------------------------
class Document(BaseModel):
    """An uploaded knowledge file and its ingestion status.

    ``chunk_count`` is denormalized: it equals the number of persisted
    chunks once the document is ready, and 0 otherwise.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID) of the document.")
    agent_id: str = Field(description="Agent the document is attached to.")
    user_id: str = Field(description="User who uploaded the document.")
    filename: str = Field(description="Original file name as uploaded.")
    media_type: str = Field(description="Declared media type of the upload.")
    size: int = Field(default=0, ge=0, description="Size of the upload in bytes.")
    status: DocumentStatus = Field(default=DocumentStatus.PROCESSING)
    error_message: str | None = Field(
        default=None, description="Failure reason when status is error."
    )
    chunk_count: int = Field(default=0, ge=0, description="Number of persisted chunks.")
    created_at: datetime = Field(description="UTC creation timestamp.")


# ---------------------------------------------------------------------------
# Chunk -- a persisted, embedded fragment of a document.
# ---------------------------------------------------------------------------
class ChunkMetadata(BaseModel):
    """Citation hints attached to a chunk."""

    model_config = ConfigDict(frozen=True)

    page: int | None = Field(default=None, ge=1, description="Estimated source page.")
    section: str | None = Field(default=None, description="Section label, if known.")
    source: str | None = Field(default=None, description="Source hint, normally the filename.")


class Chunk(BaseModel):
    """A stored chunk with its embedding vector.

    ``embedding`` is ``None`` when no vector was computed; such chunks are
    never candidates for retrieval.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique identifier (UUID) of the chunk.")
    document_id: str = Field(description="Parent document id.")
    agent_id: str = Field(description="Owning agent id, copied from the document.")
    content: str = Field(description="The chunk's text.")
    chunk_index: int = Field(ge=0, description="Zero-based position within the document.")
    token_count: int = Field(default=0, ge=0, description="Estimated token count.")
    embedding: list[float] | None = Field(default=None, description="Embedding vector.")
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


# ---------------------------------------------------------------------------
# Parser and chunker outputs (in-memory only).
# ---------------------------------------------------------------------------
class ParsedDocument(BaseModel):
    """Plain text extracted from an uploaded file."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Extracted plain text.")
    page_count: int | None = Field(default=None, ge=0, description="Pages, for paged formats.")
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Format-specific extras, e.g. DOCX conversion warnings or CSV headers.",
    )


class TextChunk(BaseModel):
    """A segment produced by the chunker, before embedding."""

    model_config = ConfigDict(frozen=True)

    content: str
    chunk_index: int = Field(ge=0)
    token_count: int = Field(ge=0)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


# ---------------------------------------------------------------------------
# Retrieval outputs.
# ---------------------------------------------------------------------------
class SearchResult(BaseModel):
    """A ranked chunk returned by semantic search, with citation data."""

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    document_id: str
    filename: str = Field(description="Filename of the parent document, for citation.")
    content: str
    chunk_index: int = Field(ge=0)
    score: float = Field(description="Cosine similarity between query and chunk.")
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


class KnowledgeStats(BaseModel):
    """Size of one agent's searchable knowledge base (ready documents only)."""

    model_config = ConfigDict(frozen=True)

    total_documents: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
