"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from TWO sources (in priority order):
#
#   1. **Environment variables** - e.g., OPENAI_API_KEY=sk-abc123
#   2. **.env file** - key=value lines in the project root .env file
#
# Field name `chunk_db_path` maps to env var `CHUNK_DB_PATH`.
# Defaults below are used when neither source defines a value.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.utils.errors import ConfigurationError


class Settings(BaseSettings):
    """Knowledge-core settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Embedding provider ===
    # Empty key = "not configured" → the factory in main.py falls back to
    # the deterministic hashing provider (offline / demo deployments).
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoint (Ollama, TogetherAI, ...)
    openai_embedding_model: str = "text-embedding-3-large"
    embedding_timeout_seconds: float = 30.0

    # === Storage ===
    chunk_db_path: str = "data/chunks.db"
    job_db_path: str = "data/jobs.db"

    # === Chunking ===
    chunk_min_tokens: int = 500
    chunk_max_tokens: int = 1000
    chunk_overlap_tokens: int = 150
    chunk_encoding: str = "cl100k_base"

    # === Job pipeline ===
    embedding_job_attempts: int = 5
    embedding_backoff_seconds: float = 5.0
    retry_delay_cap_seconds: float = 60.0
    chunk_worker_concurrency: int = 2
    embedding_worker_concurrency: int = 4
    worker_poll_interval_seconds: float = 0.5

    # === Retrieval ===
    retrieval_max_contexts: int = 6
    retrieval_mmr_lambda: float = 0.65

    # === App Config ===
    workspace_config_path: str = "config/config.yaml"
    app_env: str = "development"
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _check_chunk_bounds(self) -> "Settings":
        if not 0 <= self.chunk_overlap_tokens < self.chunk_min_tokens <= self.chunk_max_tokens:
            raise ConfigurationError(
                "chunk settings must satisfy 0 <= overlap < min <= max "
                f"(got overlap={self.chunk_overlap_tokens}, min={self.chunk_min_tokens}, "
                f"max={self.chunk_max_tokens})"
            )
        if not 0.0 <= self.retrieval_mmr_lambda <= 1.0:
            raise ConfigurationError(
                f"retrieval_mmr_lambda must be within [0, 1], got {self.retrieval_mmr_lambda}"
            )
        return self

    def uses_openai_embeddings(self) -> bool:
        """Return ``True`` when an OpenAI(-compatible) embedding backend is configured."""
        return bool(self.openai_api_key or self.openai_base_url)
