"""Application settings loaded from environment variables via pydantic-settings.

Sources, highest priority first:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``
  2. The ``.env`` file in the working directory
  3. The defaults declared below

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  The tier
limits accept JSON from the environment, e.g.
``TIER_DOCUMENT_LIMITS='{"free": 2, "pro": 10}'``.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Knowledge base service settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Embeddings ===
    # Empty key = embeddings not configured; uploads still succeed but every
    # document ends in status=error until a key is supplied.
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (TogetherAI, Azure proxy, ...)
    openai_embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536
    embedding_batch_size: int = 50

    # === Ingestion ===
    knowledge_db_path: str = "data/knowledge.db"
    chunk_max_tokens: int = 500
    chunk_overlap_tokens: int = 50
    embedding_concurrency: int = 4
    embedding_timeout_seconds: float = 30.0
    embedding_max_retries: int = 3
    embedding_retry_backoff_seconds: float = 1.0
    max_upload_bytes: int = 20 * 1024 * 1024

    # === Quotas ===
    tier_document_limits: dict[str, int] = Field(
        default_factory=lambda: {"free": 2, "pro": 10, "business": 20}
    )
    default_tier: str = "free"

    # === Retrieval ===
    search_default_top_k: int = 5
    search_max_top_k: int = 20

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def document_limit_for(self, tier: str | None) -> int:
        """Return the document cap for *tier*, falling back to the default tier."""
        limits = self.tier_document_limits
        if tier and tier in limits:
            return limits[tier]
        return limits.get(self.default_tier, 0)
