"""Application configuration loaded from the environment."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

load_dotenv(override=True)

_TRUE_VALUES = ("1", "true", "yes", "y")


@dataclass(frozen=True)
class Settings:
    """Application settings."""
    # LLM endpoint (OpenAI-compatible: Ollama or OpenAI)
    llm_base_url: str
    llm_api_key: str
    llm_model: str
    llm_temperature: float
    embedding_model: str
    request_timeout: int

    # Embeddings: "service" (HTTP endpoint above) or "local" (sentence-transformers)
    embedding_backend: str
    local_embedding_model: str

    # Dataset and query settings
    db_path: str
    query_log_path: str
    query_timeout: float
    max_rows: int

    # Catalog and prompt templates
    catalog_path: str
    prompts_dir: str

    # Table selection
    table_selection_top_k: int
    table_selection_max_distance: float

    # Embedding retry policy
    embedding_retry_cooldown: float
    embedding_retry_attempts: int
    embedding_retry_at_query_time: bool

    # Chart publishing
    publish_dir: str
    public_host: str


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in _TRUE_VALUES


def get_settings() -> Settings:
    """Load settings from environment variables."""
    base_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
    default_db = os.path.join(base_dir, "db", "toronto.db")
    default_log = os.path.join(base_dir, "db", "user_queries.db")
    default_catalog = os.path.join(base_dir, "schema", "tables.yaml")
    default_prompts = os.path.join(base_dir, "prompts")
    default_publish = os.path.join(base_dir, "published")

    return Settings(
        # LLM
        llm_base_url=os.getenv("LLM_BASE_URL", "http://localhost:11434").rstrip("/"),
        llm_api_key=os.getenv("LLM_API_KEY", ""),
        llm_model=os.getenv("LLM_MODEL", "qwen2.5-coder:30b"),
        llm_temperature=_env_float("LLM_TEMPERATURE", "0.1"),
        embedding_model=os.getenv("EMBEDDING_MODEL", "nomic-embed-text"),
        request_timeout=_env_int("REQUEST_TIMEOUT", "90"),

        # Embeddings
        embedding_backend=os.getenv("EMBEDDING_BACKEND", "service").strip().lower(),
        local_embedding_model=os.getenv("LOCAL_EMBEDDING_MODEL", "intfloat/multilingual-e5-base"),

        # Dataset
        db_path=os.getenv("DB_PATH", default_db),
        query_log_path=os.getenv("QUERY_LOG_PATH", default_log),
        query_timeout=_env_float("QUERY_TIMEOUT", "30"),
        max_rows=_env_int("MAX_ROWS", "200"),

        # Paths
        catalog_path=os.getenv("CATALOG_PATH", default_catalog),
        prompts_dir=os.getenv("PROMPTS_DIR", default_prompts),

        # Table selection
        table_selection_top_k=_env_int("TABLE_SELECTION_TOP_K", "2"),
        table_selection_max_distance=_env_float("TABLE_SELECTION_MAX_DISTANCE", "0.6"),

        # Provider asks for 20s after a rate limit; one extra second of margin
        embedding_retry_cooldown=_env_float("EMBEDDING_RETRY_COOLDOWN", "21"),
        embedding_retry_attempts=_env_int("EMBEDDING_RETRY_ATTEMPTS", "2"),
        embedding_retry_at_query_time=_env_bool("EMBEDDING_RETRY_AT_QUERY_TIME", "no"),

        # Publishing
        publish_dir=os.getenv("PUBLISH_DIR", default_publish),
        public_host=os.getenv("PUBLIC_HOST", "http://localhost:8000").rstrip("/"),
    )


# Singleton for caching settings
_settings_cache: Optional[Settings] = None


def get_cached_settings() -> Settings:
    """Get cached settings (loads once)."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = get_settings()
    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    global _settings_cache
    _settings_cache = None
