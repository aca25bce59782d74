# @TASK P0-T0.2 - pydantic-settings based engine settings

from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SmartNotes AI engine settings.

    All values are loaded from environment variables.
    A .env file in the backend directory is also supported.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Logging ---
    LOG_LEVEL: str = "INFO"

    # --- Capability detection (unset = detect from host) ---
    AI_MODEL_OVERRIDE: str = ""  # Force a model name, "fallback" disables semantic search
    DEVICE_MEMORY_GB: float | None = None
    DEVICE_CPU_CORES: int | None = None
    DEVICE_NETWORK_TYPE: str = "4g"

    # --- Embedding backend (runs inside the worker process) ---
    EMBEDDING_BACKEND: str = "sentence-transformers"  # sentence-transformers | http | openai | keyword
    EMBEDDING_SERVICE_URL: str = ""
    OPENAI_API_KEY: str = ""
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSION: int = 384

    # --- Timeouts (seconds) ---
    MODEL_LOAD_TIMEOUT_SECONDS: float = 30.0
    WORKER_REQUEST_TIMEOUT_SECONDS: float = 30.0

    # --- Embedding cache ---
    CACHE_MAX_ENTRIES: int = 500
    CACHE_EVICT_COUNT: int = 100
    CACHE_TTL_SECONDS: float = 24 * 60 * 60

    # --- Performance monitoring ---
    METRICS_HISTORY_SIZE: int = 100
    AUTO_OPTIMIZE_INTERVAL_SECONDS: float = 30.0

    # --- Search tuning (JSON object, merged over DEFAULT_SEARCH_PARAMS) ---
    SEARCH_PARAMS: dict[str, Any] = {}


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings singleton."""
    return Settings()
