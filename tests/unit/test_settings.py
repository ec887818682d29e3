"""Unit tests for Settings and the YAML config loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.config.loader import config_value, load_config
from src.config.settings import Settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CHUNK_MAX_TOKENS", raising=False)
        monkeypatch.delenv("OPENAI_EMBEDDING_MODEL", raising=False)
        s = _settings()
        assert s.chunk_max_tokens == 500
        assert s.chunk_overlap_tokens == 50
        assert s.openai_embedding_model == "text-embedding-3-small"
        assert s.search_max_top_k == 20

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHUNK_MAX_TOKENS", "300")
        monkeypatch.setenv("TIER_DOCUMENT_LIMITS", '{"free": 1, "enterprise": 100}')

        s = _settings()

        assert s.chunk_max_tokens == 300
        assert s.tier_document_limits == {"free": 1, "enterprise": 100}


class TestDocumentLimit:
    def test_known_tier(self) -> None:
        s = _settings(tier_document_limits={"free": 2, "pro": 10})
        assert s.document_limit_for("pro") == 10

    def test_unknown_or_missing_tier_uses_default(self) -> None:
        s = _settings(tier_document_limits={"free": 2, "pro": 10}, default_tier="free")
        assert s.document_limit_for("platinum") == 2
        assert s.document_limit_for(None) == 2

    def test_default_tier_not_configured(self) -> None:
        s = _settings(tier_document_limits={"pro": 10}, default_tier="free")
        assert s.document_limit_for(None) == 0


class TestLoadConfig:
    def test_yaml_merged_with_settings(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "app:\n  name: kb\n  port: 1\nretrieval:\n  default_top_k: 7\n",
            encoding="utf-8",
        )
        s = _settings(app_port=9000, openai_api_key="sk-x")

        config = load_config(str(path), settings=s)

        assert config["app"]["name"] == "kb"
        assert config["app"]["port"] == 9000
        assert config["retrieval"]["default_top_k"] == 7
        assert config["embedding"]["configured"] is True

    def test_settings_left_at_defaults_do_not_mask_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("retrieval:\n  max_top_k: 9\n", encoding="utf-8")

        config = load_config(str(path), settings=_settings())

        assert config["retrieval"]["max_top_k"] == 9

    def test_explicit_setting_beats_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("retrieval:\n  max_top_k: 9\n", encoding="utf-8")

        config = load_config(str(path), settings=_settings(search_max_top_k=12))

        assert config["retrieval"]["max_top_k"] == 12

    def test_missing_file(self, tmp_path: Path) -> None:
        config = load_config(
            str(tmp_path / "absent.yaml"), settings=_settings(chunk_max_tokens=300)
        )
        assert config["ingestion"] == {"max_tokens": 300}
        assert "retrieval" not in config


def test_config_value_falls_back() -> None:
    config = {"retrieval": {"max_top_k": 9}, "ingestion": None}
    assert config_value(config, "retrieval", "max_top_k", 20) == 9
    assert config_value(config, "retrieval", "default_top_k", 5) == 5
    assert config_value(config, "ingestion", "max_tokens", 500) == 500
    assert config_value(config, "quotas", "default_tier", "free") == "free"
