"""Unit tests for factory functions in src/main.py.

Covers embedding provider construction, _build_all assembly, the
create_app factory and the startup/shutdown lifespan, with external
dependencies mocked so no API keys or network access are needed.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI

from src.config.settings import Settings


def _settings(**overrides) -> Settings:
    defaults = {
        "_env_file": None,
        "openai_api_key": "",
        "openai_base_url": "",
        "embedding_dimension": 1536,
        "app_env": "test",
    }
    defaults.update(overrides)
    return Settings(**defaults)


# ======================================================================
# _build_embedding_provider
# ======================================================================


class TestBuildEmbeddingProvider:
    def test_returns_openai_provider(self) -> None:
        from src.main import _build_embedding_provider
        from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

        provider = _build_embedding_provider(_settings(openai_api_key="sk-test"))

        assert isinstance(provider, OpenAIEmbeddingProvider)
        assert provider.is_available() is True

    def test_missing_key_still_builds(self) -> None:
        from src.main import _build_embedding_provider

        provider = _build_embedding_provider(_settings())

        assert provider.is_available() is False


# ======================================================================
# _build_all
# ======================================================================


class TestBuildAll:
    def test_returns_expected_keys(self, db_path: str) -> None:
        from src.main import _build_all

        components = _build_all(_settings(knowledge_db_path=db_path))

        assert set(components) == {
            "settings",
            "config",
            "embedding_provider",
            "knowledge_store",
            "ingestion_service",
            "retrieval_service",
        }

    def test_services_share_store_and_provider(self, db_path: str) -> None:
        from src.main import _build_all

        components = _build_all(_settings(knowledge_db_path=db_path))

        ingestion = components["ingestion_service"]
        retrieval = components["retrieval_service"]
        assert ingestion._store is components["knowledge_store"]
        assert retrieval._store is components["knowledge_store"]
        assert ingestion._embedding_provider is components["embedding_provider"]
        assert retrieval._embedding_provider is components["embedding_provider"]

    def test_chunker_and_limits_follow_settings(self, db_path: str) -> None:
        from src.main import _build_all

        components = _build_all(
            _settings(
                knowledge_db_path=db_path,
                chunk_max_tokens=300,
                chunk_overlap_tokens=30,
                search_max_top_k=12,
            )
        )

        chunker = components["ingestion_service"]._chunker
        assert chunker._max_tokens == 300
        assert chunker._overlap_tokens == 30
        assert components["retrieval_service"]._max_top_k == 12

    def test_yaml_values_used_when_settings_not_set(self, db_path: str, tmp_path) -> None:
        from src.main import _build_all

        config_path = tmp_path / "config.yaml"
        config_path.write_text(
            "ingestion:\n  max_tokens: 250\n  concurrency: 2\nretrieval:\n  max_top_k: 9\n",
            encoding="utf-8",
        )

        components = _build_all(
            _settings(knowledge_db_path=db_path), config_path=str(config_path)
        )

        ingestion = components["ingestion_service"]
        assert ingestion._chunker._max_tokens == 250
        assert ingestion._concurrency == 2
        assert components["retrieval_service"]._max_top_k == 9
        assert components["retrieval_service"]._default_top_k == 5


# ======================================================================
# create_app
# ======================================================================


class TestCreateApp:
    def test_returns_fastapi_instance(self) -> None:
        from src.main import create_app

        application = create_app()
        assert isinstance(application, FastAPI)
        assert application.title == "Agent Knowledge Base API"
        assert application.version == "0.1.0"

    def test_app_has_api_routes(self) -> None:
        from src.main import create_app

        paths = [route.path for route in create_app().routes]
        assert "/api/v1/agents/{agent_id}/knowledge" in paths
        assert "/api/v1/agents/{agent_id}/knowledge/search" in paths
        assert "/api/v1/health" in paths

    def test_module_level_app_is_fastapi(self) -> None:
        from src.main import app

        assert isinstance(app, FastAPI)


# ======================================================================
# _lifespan
# ======================================================================


class TestLifespan:
    @pytest.mark.asyncio
    async def test_lifespan_sets_state_and_cleans_up(self) -> None:
        from src.main import _lifespan

        mock_store = MagicMock()
        mock_store.initialize = AsyncMock()
        mock_store.fail_processing_documents = AsyncMock(return_value=1)
        mock_ingestion = MagicMock()
        mock_ingestion.shutdown = AsyncMock()
        mock_embedder = MagicMock()
        mock_embedder.get_provider_name.return_value = "openai_embedding"

        mock_components = {
            "settings": _settings(),
            "config": {},
            "embedding_provider": mock_embedder,
            "knowledge_store": mock_store,
            "ingestion_service": mock_ingestion,
            "retrieval_service": MagicMock(),
        }

        app = FastAPI()

        with patch("src.main._build_all", return_value=mock_components):
            async with _lifespan(app):
                assert app.state.knowledge_store is mock_store
                assert app.state.ingestion_service is mock_ingestion
                mock_store.initialize.assert_awaited_once()
                mock_store.fail_processing_documents.assert_awaited_once()

            mock_ingestion.shutdown.assert_awaited_once()
