"""Unit tests for the knowledge data models."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.models.knowledge import Chunk, ChunkMetadata, Document, DocumentStatus, KnowledgeStats


def _document(**overrides) -> Document:
    fields = {
        "id": "doc-1",
        "agent_id": "agent-1",
        "user_id": "user-1",
        "filename": "notes.txt",
        "media_type": "text/plain",
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Document(**fields)


class TestDocument:
    def test_defaults(self) -> None:
        doc = _document()
        assert doc.status == DocumentStatus.PROCESSING
        assert doc.chunk_count == 0
        assert doc.error_message is None

    def test_frozen(self) -> None:
        doc = _document()
        with pytest.raises(ValidationError):
            doc.status = DocumentStatus.READY  # type: ignore[misc]

    def test_model_copy_transitions(self) -> None:
        ready = _document().model_copy(update={"status": DocumentStatus.READY, "chunk_count": 4})
        assert ready.status == DocumentStatus.READY
        assert ready.chunk_count == 4

    def test_status_serializes_as_value(self) -> None:
        assert _document().model_dump(mode="json")["status"] == "processing"


class TestChunk:
    def test_negative_index_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Chunk(id="c", document_id="d", agent_id="a", content="x", chunk_index=-1)

    def test_page_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ChunkMetadata(page=0)

    def test_metadata_json_omits_empty_fields(self) -> None:
        meta = ChunkMetadata(page=2, source="a.pdf")
        assert meta.model_dump_json(exclude_none=True) == '{"page":2,"source":"a.pdf"}'


def test_stats_default_to_zero() -> None:
    stats = KnowledgeStats()
    assert (stats.total_documents, stats.total_chunks, stats.total_tokens) == (0, 0, 0)
