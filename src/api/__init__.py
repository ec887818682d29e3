"""Knowledge base API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
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
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "DocumentDeleteResponse",
    "DocumentListResponse",
    "DocumentResponse",
    "DocumentUploadResponse",
    "ErrorResponse",
    "HealthResponse",
    "KnowledgeStatsResponse",
    "SearchRequest",
    "SearchResponse",
]
