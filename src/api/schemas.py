"""Pydantic request/response schemas for the knowledge base API.

These models define the shape of every HTTP request and response body.
FastAPI uses them to validate input (422 on invalid bodies), to serialize
output via ``response_model=...``, and to generate the OpenAPI docs.

Convention: request schemas end with "Request", response schemas end with
"Response".
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.models.knowledge import ChunkMetadata, Document, DocumentStatus, SearchResult


class DocumentResponse(BaseModel):
    """Public view of a knowledge document."""

    id: str
    agent_id: str
    filename: str
    media_type: str
    size: int
    status: DocumentStatus
    error_message: str | None = None
    chunk_count: int = 0
    created_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(
            id=document.id,
            agent_id=document.agent_id,
            filename=document.filename,
            media_type=document.media_type,
            size=document.size,
            status=document.status,
            error_message=document.error_message,
            chunk_count=document.chunk_count,
            created_at=document.created_at,
        )


class DocumentUploadResponse(BaseModel):
    """Returned with 201 as soon as the document row exists."""

    message: str = "Document uploaded and processing started"
    document: DocumentResponse


class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse] = Field(default_factory=list)
    total: int = 0


class DocumentDeleteResponse(BaseModel):
    message: str = "Document deleted"
    document_id: str


class KnowledgeStatsResponse(BaseModel):
    """Totals over the agent's ready documents."""

    documents: int = 0
    chunks: int = 0
    total_tokens: int = 0


class SearchRequest(BaseModel):
    """Semantic search over one agent's knowledge base."""

    query: str = Field(..., min_length=1, max_length=2000)
    top_k: int | None = Field(
        default=None,
        description="Number of results (default 5, capped at 20).",
    )


class SearchResultItem(BaseModel):
    """One ranked chunk with citation data; embeddings are never exposed."""

    chunk_id: str
    document_id: str
    filename: str
    content: str
    chunk_index: int
    score: float
    metadata: ChunkMetadata

    @classmethod
    def from_result(cls, result: SearchResult) -> SearchResultItem:
        return cls(**result.model_dump())


class SearchResponse(BaseModel):
    results: list[SearchResultItem] = Field(default_factory=list)
    total: int = 0
    query: str
    context: str = Field(
        default="",
        description="Results rendered as a numbered, cited block for prompt injection.",
    )


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    embedding_provider: str
    embedding_available: bool


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
