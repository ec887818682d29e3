"""Orchestrator for knowledge document ingestion.

Pipeline stages: **gate -> create -> parse -> chunk -> embed -> store**.

:meth:`IngestionService.upload` runs the entry gate (supported media type,
per-agent document cap), creates the :class:`Document` with
``status=processing`` and returns it right away.  The remaining stages
run in a background ``asyncio`` task owned by the service:

    1. DocumentParser   -- bytes -> plain text (worker thread)
    2. TextChunker      -- text -> overlapping ~500-token chunks
    3. IEmbeddingProvider -- one call per chunk, bounded concurrency,
       per-call timeout, retries for transient errors only
    4. IKnowledgeStoreProvider.mark_ready -- chunks + status in one
       transaction

Any failure ends the document in ``status=error`` with a message and no
chunks.  That includes a single chunk failing to embed: the whole document
fails, the embedding calls still pending are cancelled and nothing is
persisted.

Deleting a document cancels its task; chunks computed so far are dropped.
A document id can have at most one running task.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, AsyncIterator

import structlog

from src.models.knowledge import (
    Chunk,
    ChunkMetadata,
    Document,
    DocumentStatus,
    KnowledgeStats,
    TextChunk,
)
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_parser import (
    SUPPORTED_MEDIA_TYPES,
    DocumentParser,
    normalize_media_type,
)
from src.utils.concurrency import call_with_retry, throttled_gather
from src.utils.errors import (
    EmbeddingError,
    EmbeddingTransientError,
    EmbeddingUnavailableError,
    IngestionConflictError,
    KnowledgeBaseError,
    NotFoundError,
    QuotaExceededError,
    UnsupportedFormatError,
)

if TYPE_CHECKING:
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.interfaces.knowledge_store_provider import IKnowledgeStoreProvider

logger = structlog.get_logger(logger_name=__name__)

EMPTY_DOCUMENT_MESSAGE = "Document is empty or could not be parsed"
NO_CHUNKS_MESSAGE = "No text chunks produced"


class IngestionService:
    """Drives documents from upload to ``ready`` or ``error``.

    Parameters
    ----------
    store:
        Persistence for documents and chunks.
    embedding_provider:
        Produces one vector per chunk.
    parser:
        Format-specific text extraction.  Defaults to :class:`DocumentParser`.
    chunker:
        Text segmentation.  Defaults to ``TextChunker(500, 50)``.
    concurrency:
        Maximum embedding calls in flight per document.
    timeout_seconds:
        Timeout for a single embedding call.
    max_retries:
        Retries per chunk after a transient embedding error.
    backoff_seconds:
        Base delay between retries; attempt ``n`` waits ``n`` times this.
    """

    def __init__(
        self,
        store: IKnowledgeStoreProvider,
        embedding_provider: IEmbeddingProvider,
        parser: DocumentParser | None = None,
        chunker: TextChunker | None = None,
        *,
        concurrency: int = 4,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
    ) -> None:
        self._store = store
        self._embedding_provider = embedding_provider
        self._parser = parser or DocumentParser()
        self._chunker = chunker or TextChunker()
        self._concurrency = max(1, concurrency)
        self._timeout_seconds = timeout_seconds
        self._max_retries = max(0, max_retries)
        self._backoff_seconds = backoff_seconds
        # document id -> running ingestion task
        self._tasks: dict[str, asyncio.Task[None]] = {}
        # Serializes count-then-insert per agent so the cap cannot be overshot.
        # Entries live only while an upload for that agent holds or awaits them.
        self._gate_locks: dict[str, asyncio.Lock] = {}
        self._gate_holders: defaultdict[str, int] = defaultdict(int)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upload(
        self,
        *,
        agent_id: str,
        user_id: str,
        filename: str,
        media_type: str,
        data: bytes,
        max_documents: int,
    ) -> Document:
        """Accept an upload and start ingesting it in the background.

        Parameters
        ----------
        agent_id, user_id:
            Owners of the new document.
        filename, media_type:
            As declared by the uploader.
        data:
            Raw file content.
        max_documents:
            Document cap of the agent's tier.  Passed in by the caller so
            limits stay explicit.

        Returns
        -------
        Document
            The new document, still ``processing``.

        Raises
        ------
        UnsupportedFormatError
            If the media type cannot be parsed.  No row is created.
        QuotaExceededError
            If the agent already holds ``max_documents`` documents.  No row
            is created.
        """
        resolved = normalize_media_type(media_type, filename)
        if resolved not in SUPPORTED_MEDIA_TYPES:
            raise UnsupportedFormatError(
                message=(
                    f"Unsupported file type: {media_type or 'unknown'}. "
                    "Accepted: PDF, DOCX, TXT, MD, CSV, JSON."
                ),
            )

        async with self._agent_gate(agent_id):
            existing = await self._store.count_documents(agent_id)
            if existing >= max_documents:
                logger.info(
                    "knowledge_quota_exceeded",
                    agent_id=agent_id,
                    documents=existing,
                    limit=max_documents,
                )
                raise QuotaExceededError(
                    message=(
                        f"Knowledge document limit reached ({existing}/{max_documents}). "
                        "Delete a document or upgrade your plan."
                    ),
                )

            document = Document(
                id=str(uuid.uuid4()),
                agent_id=agent_id,
                user_id=user_id,
                filename=filename,
                media_type=resolved,
                size=len(data),
                status=DocumentStatus.PROCESSING,
                chunk_count=0,
                created_at=datetime.now(timezone.utc),
            )
            await self._store.create_document(document)

        self._schedule(document, data)
        return document

    async def ingest_document(self, document_id: str, data: bytes) -> None:
        """Start ingestion for an existing ``processing`` document.

        Raises
        ------
        NotFoundError
            If the document does not exist.
        IngestionConflictError
            If the document is already being ingested or has already
            reached ``ready``/``error`` (delete and re-upload instead).
        """
        document = await self._store.get_document(document_id)
        if document is None:
            raise NotFoundError(message=f"Document not found: {document_id}")
        if document.status is not DocumentStatus.PROCESSING:
            raise IngestionConflictError(
                message=(
                    f"Document {document_id} is {document.status.value}; "
                    "delete it and upload again to re-ingest"
                ),
            )
        self._schedule(document, data)

    def is_ingesting(self, document_id: str) -> bool:
        task = self._tasks.get(document_id)
        return task is not None and not task.done()

    async def wait_for(self, document_id: str) -> None:
        """Block until the document's ingestion task (if any) has finished."""
        task = self._tasks.get(document_id)
        if task is not None:
            await asyncio.wait({task})

    async def get_document(self, document_id: str, agent_id: str | None = None) -> Document:
        document = await self._store.get_document(document_id)
        if document is None or (agent_id is not None and document.agent_id != agent_id):
            raise NotFoundError(message=f"Document not found: {document_id}")
        return document

    async def list_documents(self, agent_id: str) -> list[Document]:
        """Return the agent's documents, newest first."""
        return await self._store.list_documents(agent_id)

    async def get_stats(self, agent_id: str) -> KnowledgeStats:
        return await self._store.get_stats(agent_id)

    async def delete_document(
        self,
        document_id: str,
        *,
        agent_id: str | None = None,
        user_id: str | None = None,
    ) -> Document:
        """Delete a document and its chunks, cancelling any running ingestion.

        ``agent_id`` and ``user_id`` scope the lookup; a document owned by
        someone else is reported as not found.
        """
        document = await self.get_document(document_id, agent_id=agent_id)
        if user_id is not None and document.user_id != user_id:
            raise NotFoundError(message=f"Document not found: {document_id}")

        task = self._tasks.get(document_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

        if not await self._store.delete_document(document_id):
            raise NotFoundError(message=f"Document not found: {document_id}")
        return document

    async def shutdown(self) -> None:
        """Cancel every running ingestion task and wait for them to stop."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        logger.info("ingestion_shutdown", cancelled=len(tasks))

    @asynccontextmanager
    async def _agent_gate(self, agent_id: str) -> AsyncIterator[None]:
        lock = self._gate_locks.setdefault(agent_id, asyncio.Lock())
        self._gate_holders[agent_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._gate_holders[agent_id] -= 1
            if not self._gate_holders[agent_id]:
                del self._gate_holders[agent_id]
                del self._gate_locks[agent_id]

    # ------------------------------------------------------------------
    # Background pipeline
    # ------------------------------------------------------------------

    def _schedule(self, document: Document, data: bytes) -> asyncio.Task[None]:
        if self.is_ingesting(document.id):
            raise IngestionConflictError(
                message=f"Document {document.id} is already being ingested",
            )
        task = asyncio.create_task(
            self._run(document, data), name=f"ingest-{document.id}"
        )
        self._tasks[document.id] = task
        task.add_done_callback(lambda t, doc_id=document.id: self._on_task_done(doc_id, t))
        return task

    def _on_task_done(self, document_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(document_id) is task:
            del self._tasks[document_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "document_ingestion_crashed",
                document_id=document_id,
                error=str(task.exception()),
            )

    async def _run(self, document: Document, data: bytes) -> None:
        start = time.perf_counter()
        logger.info(
            "document_ingestion_started",
            document_id=document.id,
            agent_id=document.agent_id,
            filename=document.filename,
            media_type=document.media_type,
            size=document.size,
        )

        try:
            parsed = await asyncio.to_thread(
                self._parser.parse, data, document.media_type, document.filename
            )
            if not parsed.text.strip():
                await self._fail(document, EMPTY_DOCUMENT_MESSAGE)
                return

            text_chunks = self._chunker.chunk_with_pages(parsed.text, parsed.page_count)
            if not text_chunks:
                await self._fail(document, NO_CHUNKS_MESSAGE)
                return

            chunks = await self._embed_chunks(document, text_chunks)
        except asyncio.CancelledError:
            logger.info("document_ingestion_cancelled", document_id=document.id)
            raise
        except KnowledgeBaseError as exc:
            await self._fail(document, exc.message)
            return
        except Exception as exc:
            logger.exception("document_ingestion_unexpected_error", document_id=document.id)
            await self._fail(document, f"Unexpected ingestion failure: {exc}")
            return

        try:
            stored = await self._store.mark_ready(document.id, chunks)
        except asyncio.CancelledError:
            logger.info("document_ingestion_cancelled", document_id=document.id)
            raise
        except Exception as exc:
            logger.exception("document_chunk_storage_failed", document_id=document.id)
            await self._fail(document, f"Failed to store chunks: {exc}")
            return

        if not stored:
            logger.info("document_ingestion_discarded", document_id=document.id)
            return

        logger.info(
            "document_ingestion_complete",
            document_id=document.id,
            agent_id=document.agent_id,
            chunks=len(chunks),
            pages=parsed.page_count,
            total_tokens=sum(c.token_count for c in chunks),
            duration_s=round(time.perf_counter() - start, 2),
        )

    async def _embed_chunks(self, document: Document, text_chunks: list[TextChunk]) -> list[Chunk]:
        """Embed every chunk; the first failure cancels the rest and fails the document."""
        semaphore = asyncio.Semaphore(self._concurrency)
        try:
            vectors = await throttled_gather(
                [self._embed_chunk(tc) for tc in text_chunks],
                semaphore,
                return_exceptions=False,
            )
        except EmbeddingError as exc:
            logger.warning(
                "document_embedding_failed",
                document_id=document.id,
                total_chunks=len(text_chunks),
                error=exc.message,
            )
            raise

        return [
            Chunk(
                id=str(uuid.uuid4()),
                document_id=document.id,
                agent_id=document.agent_id,
                content=tc.content,
                chunk_index=tc.chunk_index,
                token_count=tc.token_count,
                embedding=vector,
                metadata=ChunkMetadata(
                    page=tc.metadata.page,
                    section=tc.metadata.section,
                    source=document.filename,
                ),
            )
            for tc, vector in zip(text_chunks, vectors)
        ]

    async def _embed_chunk(self, text_chunk: TextChunk) -> list[float]:
        try:
            return await self._embed_with_retry(text_chunk.content)
        except KnowledgeBaseError as exc:
            raise EmbeddingError(
                message=f"Embedding failed for chunk {text_chunk.chunk_index}: {exc.message}",
                provider_name=exc.provider_name,
            ) from exc

    async def _embed_with_retry(self, text: str) -> list[float]:
        return await call_with_retry(
            lambda: self._embedding_provider.embed_single(text),
            retry_on=(EmbeddingTransientError,),
            max_retries=self._max_retries,
            backoff_seconds=self._backoff_seconds,
            timeout_seconds=self._timeout_seconds,
            timeout_error=lambda: EmbeddingUnavailableError(
                message=f"Embedding timed out after {self._timeout_seconds}s",
                provider_name=self._embedding_provider.get_provider_name(),
            ),
            logger=logger,
            event="embedding_retry",
        )

    async def _fail(self, document: Document, message: str) -> None:
        try:
            recorded = await self._store.mark_error(document.id, message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "document_error_not_recorded",
                document_id=document.id,
                error=message,
            )
            raise
        logger.warning(
            "document_ingestion_failed",
            document_id=document.id,
            agent_id=document.agent_id,
            error=message,
            recorded=recorded,
        )
