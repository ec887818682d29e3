"""Shared pytest fixtures for the knowledge base test suite."""

from __future__ import annotations

import hashlib
import io
import math
import os
import re
import tempfile
from datetime import datetime, timezone

import docx
import fitz
import pytest

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.models.knowledge import Document, DocumentStatus
from src.providers.knowledge_store.sqlite_knowledge_store import SQLiteKnowledgeStore

FAKE_DIMENSION = 16

_WORD = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Fake embedding provider
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic bag-of-words embedder.

    Each lower-cased word is hashed into one of ``FAKE_DIMENSION`` buckets,
    so texts sharing words have a higher cosine similarity.  ``fail_on``
    maps a substring to an exception raised whenever a text contains it.
    """

    def __init__(self, fail_on: dict[str, Exception] | None = None) -> None:
        self.calls: list[str] = []
        self.fail_on = fail_on or {}

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed_single(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.calls.append(text)
        for marker, error in self.fail_on.items():
            if marker in text:
                raise error
        return bag_of_words_vector(text)

    def get_dimension(self) -> int:
        return FAKE_DIMENSION

    def get_provider_name(self) -> str:
        return "fake_embedding"

    def is_available(self) -> bool:
        return True


def bag_of_words_vector(text: str) -> list[float]:
    vector = [0.0] * FAKE_DIMENSION
    for word in _WORD.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % FAKE_DIMENSION
        vector[bucket] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    return [v / norm for v in vector] if norm else vector


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def db_path():
    """Path to a temporary SQLite file, removed afterwards."""
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    yield tmp.name
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(tmp.name + suffix):
            os.unlink(tmp.name + suffix)


@pytest.fixture
async def store(db_path: str) -> SQLiteKnowledgeStore:
    """An initialized SQLiteKnowledgeStore on a temporary database."""
    s = SQLiteKnowledgeStore(db_path=db_path)
    await s.initialize()
    return s


@pytest.fixture
def test_settings(db_path: str) -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        knowledge_db_path=db_path,
        embedding_dimension=FAKE_DIMENSION,
        tier_document_limits={"free": 2, "pro": 10},
        default_tier="free",
        max_upload_bytes=1024 * 1024,
    )


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_document(
    document_id: str = "doc-1",
    agent_id: str = "agent-1",
    user_id: str = "user-1",
    filename: str = "notes.txt",
    status: DocumentStatus = DocumentStatus.PROCESSING,
    created_at: datetime | None = None,
) -> Document:
    return Document(
        id=document_id,
        agent_id=agent_id,
        user_id=user_id,
        filename=filename,
        media_type="text/plain",
        size=100,
        status=status,
        created_at=created_at or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc),
    )


def make_pdf_bytes(pages: list[str]) -> bytes:
    """Build a small text PDF with one string per page."""
    pdf = fitz.open()
    for text in pages:
        page = pdf.new_page()
        page.insert_text((72, 72), text)
    data = pdf.tobytes()
    pdf.close()
    return data


def make_docx_bytes(paragraphs: list[str]) -> bytes:
    document = docx.Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def long_text(sentences: int = 60) -> str:
    """Prose long enough to need several 500-token chunks at small budgets."""
    return " ".join(
        f"Sentence number {i} talks about topic {i % 7} in some detail." for i in range(sentences)
    )
