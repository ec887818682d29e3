"""YAML configuration loader with environment variable overrides.

Configuration is layered, later layers winning:

  1. config/config.yaml  -- static defaults checked into the repo
  2. .env file           -- local developer overrides
  3. Environment vars    -- set at deploy time

``load_config()`` reads the YAML file, then deep-merges the settings that
were explicitly provided (environment, ``.env`` or constructor) on top of
it.  Settings left at their declared defaults do not mask the YAML.
"""

from pathlib import Path
from typing import Any

import yaml

from src.config.settings import Settings

# (section, key) in the merged config -> Settings field
_SETTINGS_KEYS: dict[tuple[str, str], str] = {
    ("app", "host"): "app_host",
    ("app", "port"): "app_port",
    ("app", "env"): "app_env",
    ("embedding", "model"): "openai_embedding_model",
    ("embedding", "dimension"): "embedding_dimension",
    ("embedding", "batch_size"): "embedding_batch_size",
    ("ingestion", "db_path"): "knowledge_db_path",
    ("ingestion", "max_tokens"): "chunk_max_tokens",
    ("ingestion", "overlap_tokens"): "chunk_overlap_tokens",
    ("ingestion", "concurrency"): "embedding_concurrency",
    ("ingestion", "max_upload_bytes"): "max_upload_bytes",
    ("retrieval", "default_top_k"): "search_default_top_k",
    ("retrieval", "max_top_k"): "search_max_top_k",
    ("quotas", "tier_document_limits"): "tier_document_limits",
    ("quotas", "default_tier"): "default_tier",
    ("logging", "level"): "log_level",
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Resolved settings to overlay; built from the environment
            when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    if settings is None:
        settings = Settings()

    env_overrides: dict = {"embedding": {"configured": bool(settings.openai_api_key)}}
    for (section, key), field in _SETTINGS_KEYS.items():
        if field in settings.model_fields_set:
            env_overrides.setdefault(section, {})[key] = getattr(settings, field)

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def config_value(config: dict, section: str, key: str, default: Any) -> Any:
    """Return ``config[section][key]``, or *default* when either is absent."""
    return (config.get(section) or {}).get(key, default)


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
