"""Knowledge base domain models -- re-exports all public model classes.

Import from ``src.models`` rather than from ``src.models.knowledge`` so
call sites stay stable if the models are split into more modules later.
"""

from __future__ import annotations

from src.models.knowledge import (
    Chunk,
    ChunkMetadata,
    Document,
    DocumentStatus,
    KnowledgeStats,
    ParsedDocument,
    SearchResult,
    TextChunk,
)

__all__ = [
    # documents
    "Document",
    "DocumentStatus",
    # chunks
    "Chunk",
    "ChunkMetadata",
    "TextChunk",
    # parser output
    "ParsedDocument",
    # retrieval
    "KnowledgeStats",
    "SearchResult",
]
