"""Knowledge base FastAPI application entry point.

Wires the embedding provider, knowledge store, ingestion orchestrator and
retrieval service together and exposes them to the routes via
``app.state``.  Configuration comes from ``.env`` / environment variables
and ``config/config.yaml``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config import settings
from src.config.loader import config_value, load_config
from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from src.providers.knowledge_store.sqlite_knowledge_store import SQLiteKnowledgeStore
from src.services.ingestion.chunker import TextChunker
from src.services.ingestion.document_parser import DocumentParser
from src.services.ingestion.ingestion_service import IngestionService
from src.services.retrieval_service import RetrievalService
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"
_INTERRUPTED_MESSAGE = "Ingestion interrupted by a server restart; delete and upload the document again"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    provider = OpenAIEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        _logger.warning(
            "embedding_provider_unconfigured",
            provider=provider.get_provider_name(),
            msg="Set OPENAI_API_KEY; uploads will end in status=error until then.",
        )
    return provider


def _build_all(
    app_settings: Settings, config_path: str = "config/config.yaml"
) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Chunking, embedding concurrency and retrieval limits come from the merged
    YAML config; the remaining knobs come straight from *app_settings*.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    config = load_config(config_path, settings=app_settings)

    embedding_provider = _build_embedding_provider(app_settings)
    knowledge_store = SQLiteKnowledgeStore(db_path=app_settings.knowledge_db_path)

    ingestion_service = IngestionService(
        store=knowledge_store,
        embedding_provider=embedding_provider,
        parser=DocumentParser(),
        chunker=TextChunker(
            max_tokens=config_value(
                config, "ingestion", "max_tokens", app_settings.chunk_max_tokens
            ),
            overlap_tokens=config_value(
                config, "ingestion", "overlap_tokens", app_settings.chunk_overlap_tokens
            ),
        ),
        concurrency=config_value(
            config, "ingestion", "concurrency", app_settings.embedding_concurrency
        ),
        timeout_seconds=app_settings.embedding_timeout_seconds,
        max_retries=app_settings.embedding_max_retries,
        backoff_seconds=app_settings.embedding_retry_backoff_seconds,
    )
    retrieval_service = RetrievalService(
        store=knowledge_store,
        embedding_provider=embedding_provider,
        default_top_k=config_value(
            config, "retrieval", "default_top_k", app_settings.search_default_top_k
        ),
        max_top_k=config_value(config, "retrieval", "max_top_k", app_settings.search_max_top_k),
    )

    return {
        "settings": app_settings,
        "config": config,
        "embedding_provider": embedding_provider,
        "knowledge_store": knowledge_store,
        "ingestion_service": ingestion_service,
        "retrieval_service": retrieval_service,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    knowledge_store: SQLiteKnowledgeStore = components["knowledge_store"]
    await knowledge_store.initialize()
    await knowledge_store.fail_processing_documents(_INTERRUPTED_MESSAGE)

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        embedding_provider=components["embedding_provider"].get_provider_name(),
        embedding_model=settings.openai_embedding_model,
        db_path=settings.knowledge_db_path,
    )

    yield

    await components["ingestion_service"].shutdown()
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="Agent Knowledge Base API",
        version=_VERSION,
        description=(
            "Attach documents to conversational agents: upload PDF, DOCX, CSV, "
            "JSON, Markdown or text files, have them chunked and embedded in the "
            "background, then retrieve the most relevant passages with citations."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
