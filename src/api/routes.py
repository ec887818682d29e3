"""FastAPI routes for agent knowledge bases.

Service dependencies are resolved from ``app.state`` via ``Depends`` using
the ``Annotated`` pattern.  Authentication happens upstream; the caller's
identity arrives in the ``X-User-Id`` header and their plan in
``X-User-Tier``.

Endpoint                                         Method  Description
-------------------------------------------------------------------------
/api/v1/agents/{aid}/knowledge                   POST    Upload a document
/api/v1/agents/{aid}/knowledge                   GET     List documents
/api/v1/agents/{aid}/knowledge/stats             GET     Ready totals
/api/v1/agents/{aid}/knowledge/search            POST    Semantic search
/api/v1/agents/{aid}/knowledge/{doc_id}          GET     One document
/api/v1/agents/{aid}/knowledge/{doc_id}          DELETE  Delete + cascade
/api/v1/health                                   GET     Health check
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, UploadFile

from src.api.schemas import (
    DocumentDeleteResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
    ErrorResponse,
    HealthResponse,
    KnowledgeStatsResponse,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
)
from src.config.settings import Settings
from src.services.ingestion.document_parser import SUPPORTED_MEDIA_TYPES, is_supported_media_type
from src.services.ingestion.ingestion_service import IngestionService
from src.services.retrieval_service import RetrievalService, build_rag_context
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_UPLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_ingestion_service(request: Request) -> IngestionService:
    """Return the ingestion orchestrator from application state."""
    return request.app.state.ingestion_service


def _get_retrieval_service(request: Request) -> RetrievalService:
    """Return the retrieval service from application state."""
    return request.app.state.retrieval_service


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Return the authenticated caller id set by the upstream gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval_service)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]
UserIdDep = Annotated[str, Depends(_get_user_id)]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/agents/{agent_id}/knowledge",
    status_code=201,
    response_model=DocumentUploadResponse,
    responses={
        403: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
    },
    summary="Upload a knowledge document for an agent",
)
async def upload_document(
    agent_id: str,
    file: UploadFile,
    ingestion: IngestionDep,
    app_settings: SettingsDep,
    user_id: UserIdDep,
    x_user_tier: Annotated[str | None, Header()] = None,
) -> DocumentUploadResponse:
    """Store the upload as a ``processing`` document and ingest it in the background."""
    filename = file.filename or "upload"
    content_type = file.content_type or ""
    if not is_supported_media_type(content_type, filename):
        raise HTTPException(
            status_code=415,
            detail=(
                f"Unsupported file type: {content_type or 'unknown'}. "
                f"Allowed: {', '.join(sorted(SUPPORTED_MEDIA_TYPES))}"
            ),
        )

    # Stream in 64 KB chunks so oversized uploads are rejected early.
    max_size = app_settings.max_upload_bytes
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_size:
            raise HTTPException(
                status_code=413,
                detail=(
                    f"File too large: >{max_size // (1024 * 1024)} MB. "
                    f"Maximum: {max_size} bytes."
                ),
            )
        chunks.append(chunk)
    data = b"".join(chunks)
    del chunks

    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    document = await ingestion.upload(
        agent_id=agent_id,
        user_id=user_id,
        filename=filename,
        media_type=content_type,
        data=data,
        max_documents=app_settings.document_limit_for(x_user_tier),
    )
    _logger.info(
        "knowledge_upload_accepted",
        agent_id=agent_id,
        document_id=document.id,
        filename=filename,
        size=document.size,
    )
    return DocumentUploadResponse(document=DocumentResponse.from_document(document))


@router.get(
    "/agents/{agent_id}/knowledge",
    response_model=DocumentListResponse,
    summary="List an agent's knowledge documents",
)
async def list_documents(
    agent_id: str,
    ingestion: IngestionDep,
    user_id: UserIdDep,
) -> DocumentListResponse:
    """Return every document of the agent, newest first, with its status."""
    documents = await ingestion.list_documents(agent_id)
    return DocumentListResponse(
        documents=[DocumentResponse.from_document(d) for d in documents],
        total=len(documents),
    )


@router.get(
    "/agents/{agent_id}/knowledge/stats",
    response_model=KnowledgeStatsResponse,
    summary="Get knowledge base totals for an agent",
)
async def knowledge_stats(
    agent_id: str,
    ingestion: IngestionDep,
    user_id: UserIdDep,
) -> KnowledgeStatsResponse:
    stats = await ingestion.get_stats(agent_id)
    return KnowledgeStatsResponse(
        documents=stats.total_documents,
        chunks=stats.total_chunks,
        total_tokens=stats.total_tokens,
    )


@router.post(
    "/agents/{agent_id}/knowledge/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    summary="Semantic search over an agent's knowledge base",
)
async def search_knowledge(
    agent_id: str,
    body: SearchRequest,
    retrieval: RetrievalDep,
    user_id: UserIdDep,
) -> SearchResponse:
    """Return the chunks most similar to the query, with citation data."""
    query = body.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Query is required")

    results = await retrieval.search(agent_id, query, body.top_k)
    return SearchResponse(
        results=[SearchResultItem.from_result(r) for r in results],
        total=len(results),
        query=query,
        context=build_rag_context(results),
    )


@router.get(
    "/agents/{agent_id}/knowledge/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get one knowledge document",
)
async def get_document(
    agent_id: str,
    document_id: str,
    ingestion: IngestionDep,
    user_id: UserIdDep,
) -> DocumentResponse:
    """Return a document's status; poll this until it leaves ``processing``."""
    document = await ingestion.get_document(document_id, agent_id=agent_id)
    return DocumentResponse.from_document(document)


@router.delete(
    "/agents/{agent_id}/knowledge/{document_id}",
    response_model=DocumentDeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a knowledge document and its chunks",
)
async def delete_document(
    agent_id: str,
    document_id: str,
    ingestion: IngestionDep,
    user_id: UserIdDep,
) -> DocumentDeleteResponse:
    """Delete the document, cancelling its ingestion if still running."""
    await ingestion.delete_document(document_id, agent_id=agent_id, user_id=user_id)
    _logger.info("knowledge_document_removed", agent_id=agent_id, document_id=document_id)
    return DocumentDeleteResponse(document_id=document_id)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(request: Request) -> HealthResponse:
    embedding_provider = request.app.state.embedding_provider
    return HealthResponse(
        version=_VERSION,
        embedding_provider=embedding_provider.get_provider_name(),
        embedding_available=embedding_provider.is_available(),
    )
