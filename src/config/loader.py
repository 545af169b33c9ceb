"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  -- Static defaults and workspace seeds
#   2. .env file           -- Local developer overrides (not committed)
#   3. Environment vars    -- Set at deploy time
#
# load_config() reads the YAML file first, then deep-merges the values
# resolved by Settings (layers 2 and 3) on top.  Workspace seeds only live
# in YAML; everything tunable lives in Settings.
#
# The _deep_merge helper does recursive dict merging:
#   base = {"chunking": {"min_tokens": 500}}
#   overrides = {"chunking": {"overlap_tokens": 100}}
#   result = {"chunking": {"min_tokens": 500, "overlap_tokens": 100}}
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.  A missing file yields
              an empty base config (no workspaces).
        settings: Pre-built settings; a fresh ``Settings()`` when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the YAML file is malformed.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            try:
                yaml_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Malformed config file {path}: {exc}") from exc
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level")

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "env": settings.app_env,
        },
        "embedding": {
            "provider": "openai" if settings.uses_openai_embeddings() else "hashing",
            "model": settings.openai_embedding_model,
            "timeout_seconds": settings.embedding_timeout_seconds,
        },
        "storage": {
            "chunk_db_path": settings.chunk_db_path,
            "job_db_path": settings.job_db_path,
        },
        "chunking": {
            "min_tokens": settings.chunk_min_tokens,
            "max_tokens": settings.chunk_max_tokens,
            "overlap_tokens": settings.chunk_overlap_tokens,
            "encoding": settings.chunk_encoding,
        },
        "pipeline": {
            "embedding_job_attempts": settings.embedding_job_attempts,
            "embedding_backoff_seconds": settings.embedding_backoff_seconds,
            "retry_delay_cap_seconds": settings.retry_delay_cap_seconds,
            "chunk_worker_concurrency": settings.chunk_worker_concurrency,
            "embedding_worker_concurrency": settings.embedding_worker_concurrency,
            "poll_interval_seconds": settings.worker_poll_interval_seconds,
        },
        "retrieval": {
            "max_contexts": settings.retrieval_max_contexts,
            "mmr_lambda": settings.retrieval_mmr_lambda,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
