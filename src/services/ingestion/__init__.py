"""Document ingestion pipeline for agent knowledge bases.

Stages: **parse -> chunk -> embed -> store**.

1. **Parse** (document_parser.py / DocumentParser) -- PDF, DOCX, CSV, JSON,
   Markdown and plain-text uploads become plain text.

2. **Chunk** (chunker.py / TextChunker) -- sentence-aware ~500-token
   windows with ~50 tokens of overlap, optionally stamped with an
   estimated page number.

3. **Embed + Store** (ingestion_service.py / IngestionService) -- runs in
   a background task per document, embeds chunks with bounded concurrency
   and retries, then persists them and marks the document ready.
"""

from src.services.ingestion.chunker import TextChunker, estimate_tokens
from src.services.ingestion.document_parser import (
    SUPPORTED_MEDIA_TYPES,
    DocumentParser,
    is_supported_media_type,
)
from src.services.ingestion.ingestion_service import IngestionService

__all__ = [
    "SUPPORTED_MEDIA_TYPES",
    "DocumentParser",
    "IngestionService",
    "TextChunker",
    "estimate_tokens",
    "is_supported_media_type",
]
