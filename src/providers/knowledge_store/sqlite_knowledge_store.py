"""SQLite-backed knowledge store.

Persists documents and their embedded chunks to a local SQLite database at
``data/knowledge.db`` using ``aiosqlite``.  Chunks reference their
document with ``ON DELETE CASCADE``, so deleting a document removes every
chunk in the same statement.  Embedding vectors are stored as JSON arrays.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import structlog

from src.interfaces.knowledge_store_provider import IKnowledgeStoreProvider, SearchCandidate
from src.models.knowledge import Chunk, ChunkMetadata, Document, DocumentStatus, KnowledgeStats

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge.db")

_CREATE_DOCUMENTS_SQL = """\
CREATE TABLE IF NOT EXISTS knowledge_documents (
    id             TEXT    PRIMARY KEY,
    agent_id       TEXT    NOT NULL,
    user_id        TEXT    NOT NULL,
    filename       TEXT    NOT NULL,
    media_type     TEXT    NOT NULL,
    size           INTEGER NOT NULL DEFAULT 0,
    status         TEXT    NOT NULL DEFAULT 'processing',
    error_message  TEXT,
    chunk_count    INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT    NOT NULL
);
"""

_CREATE_CHUNKS_SQL = """\
CREATE TABLE IF NOT EXISTS knowledge_chunks (
    id           TEXT    PRIMARY KEY,
    document_id  TEXT    NOT NULL REFERENCES knowledge_documents(id) ON DELETE CASCADE,
    agent_id     TEXT    NOT NULL,
    content      TEXT    NOT NULL,
    chunk_index  INTEGER NOT NULL,
    token_count  INTEGER NOT NULL DEFAULT 0,
    embedding    TEXT,
    metadata     TEXT    NOT NULL DEFAULT '{}',
    UNIQUE(document_id, chunk_index)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_agent ON knowledge_documents(agent_id);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_agent ON knowledge_chunks(agent_id);",
    "CREATE INDEX IF NOT EXISTS idx_chunks_document ON knowledge_chunks(document_id);",
]

_DOCUMENT_COLUMNS = (
    "id, agent_id, user_id, filename, media_type, size, status, "
    "error_message, chunk_count, created_at"
)

_INSERT_DOCUMENT_SQL = f"""\
INSERT INTO knowledge_documents ({_DOCUMENT_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_INSERT_CHUNK_SQL = """\
INSERT INTO knowledge_chunks
    (id, document_id, agent_id, content, chunk_index, token_count, embedding, metadata)
VALUES (?, ?, ?, ?, ?, ?, ?, ?);
"""

_MARK_READY_SQL = """\
UPDATE knowledge_documents
SET status = 'ready', chunk_count = ?, error_message = NULL
WHERE id = ? AND status = 'processing';
"""

_MARK_ERROR_SQL = """\
UPDATE knowledge_documents
SET status = 'error', chunk_count = 0, error_message = ?
WHERE id = ? AND status = 'processing';
"""

_SELECT_CANDIDATES_SQL = """\
SELECT c.id, c.document_id, c.agent_id, c.content, c.chunk_index, c.token_count,
       c.embedding, c.metadata, d.filename, d.created_at AS document_created_at
FROM knowledge_chunks c
JOIN knowledge_documents d ON d.id = c.document_id
WHERE c.agent_id = ? AND d.status = 'ready' AND c.embedding IS NOT NULL
ORDER BY d.created_at ASC, c.chunk_index ASC;
"""

_SELECT_STATS_SQL = """\
SELECT COUNT(DISTINCT d.id) AS total_documents,
       COUNT(c.id) AS total_chunks,
       COALESCE(SUM(c.token_count), 0) AS total_tokens
FROM knowledge_documents d
LEFT JOIN knowledge_chunks c ON c.document_id = d.id
WHERE d.agent_id = ? AND d.status = 'ready';
"""


class SQLiteKnowledgeStore(IKnowledgeStoreProvider):
    """SQLite-backed document and chunk persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the document and chunk tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_DOCUMENTS_SQL)
            await db.execute(_CREATE_CHUNKS_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("knowledge_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        async with self._connect() as db:
            await db.execute(
                _INSERT_DOCUMENT_SQL,
                (
                    document.id,
                    document.agent_id,
                    document.user_id,
                    document.filename,
                    document.media_type,
                    document.size,
                    document.status.value,
                    document.error_message,
                    document.chunk_count,
                    document.created_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info(
            "knowledge_document_created",
            document_id=document.id,
            agent_id=document.agent_id,
            filename=document.filename,
        )
        return document

    async def get_document(self, document_id: str) -> Document | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM knowledge_documents WHERE id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
        return _row_to_document(row) if row else None

    async def list_documents(self, agent_id: str) -> list[Document]:
        """Return all documents of an agent, newest first."""
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM knowledge_documents "
                "WHERE agent_id = ? ORDER BY created_at DESC, rowid DESC",
                (agent_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_document(r) for r in rows]

    async def count_documents(self, agent_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM knowledge_documents WHERE agent_id = ?",
                (agent_id,),
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def mark_ready(self, document_id: str, chunks: list[Chunk]) -> bool:
        """Insert *chunks* and flip the document to ready in one transaction."""
        rows = [
            (
                c.id,
                c.document_id,
                c.agent_id,
                c.content,
                c.chunk_index,
                c.token_count,
                json.dumps(c.embedding) if c.embedding is not None else None,
                c.metadata.model_dump_json(exclude_none=True),
            )
            for c in chunks
        ]
        async with self._connect() as db:
            cursor = await db.execute(_MARK_READY_SQL, (len(chunks), document_id))
            if cursor.rowcount == 0:
                # Deleted or no longer processing: nothing may be written.
                await db.rollback()
                logger.info("knowledge_chunks_discarded", document_id=document_id, chunks=len(chunks))
                return False
            await db.executemany(_INSERT_CHUNK_SQL, rows)
            await db.commit()
        return True

    async def mark_error(self, document_id: str, message: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(_MARK_ERROR_SQL, (message, document_id))
            updated = cursor.rowcount > 0
            await db.commit()
        return updated

    async def fail_processing_documents(self, message: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE knowledge_documents SET status = 'error', chunk_count = 0, "
                "error_message = ? WHERE status = 'processing'",
                (message,),
            )
            updated = cursor.rowcount
            await db.commit()
        if updated:
            logger.warning("knowledge_interrupted_documents_failed", documents=updated)
        return updated

    async def delete_document(self, document_id: str) -> bool:
        async with self._connect() as db:
            cursor = await db.execute(
                "DELETE FROM knowledge_documents WHERE id = ?", (document_id,)
            )
            deleted = cursor.rowcount > 0
            await db.commit()
        if deleted:
            logger.info("knowledge_document_deleted", document_id=document_id)
        return deleted

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def get_chunks(self, document_id: str) -> list[Chunk]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT id, document_id, agent_id, content, chunk_index, token_count, "
                "embedding, metadata FROM knowledge_chunks "
                "WHERE document_id = ? ORDER BY chunk_index ASC",
                (document_id,),
            )
            rows = await cursor.fetchall()
        return [_row_to_chunk(r) for r in rows]

    async def get_search_candidates(self, agent_id: str) -> list[SearchCandidate]:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_CANDIDATES_SQL, (agent_id,))
            rows = await cursor.fetchall()
        return [
            SearchCandidate(
                chunk=_row_to_chunk(r),
                filename=r["filename"],
                document_created_at=datetime.fromisoformat(r["document_created_at"]),
            )
            for r in rows
        ]

    async def get_stats(self, agent_id: str) -> KnowledgeStats:
        async with self._connect() as db:
            cursor = await db.execute(_SELECT_STATS_SQL, (agent_id,))
            row = await cursor.fetchone()
        if row is None:
            return KnowledgeStats()
        return KnowledgeStats(
            total_documents=row["total_documents"],
            total_chunks=row["total_chunks"],
            total_tokens=row["total_tokens"],
        )

    def get_provider_name(self) -> str:
        return "sqlite"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        # Cascading deletes need foreign keys enabled on every connection.
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON;")
            yield db


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(
        id=row["id"],
        agent_id=row["agent_id"],
        user_id=row["user_id"],
        filename=row["filename"],
        media_type=row["media_type"],
        size=row["size"],
        status=DocumentStatus(row["status"]),
        error_message=row["error_message"],
        chunk_count=row["chunk_count"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
    embedding = row["embedding"]
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        agent_id=row["agent_id"],
        content=row["content"],
        chunk_index=row["chunk_index"],
        token_count=row["token_count"],
        embedding=json.loads(embedding) if embedding is not None else None,
        metadata=ChunkMetadata.model_validate_json(row["metadata"] or "{}"),
    )
