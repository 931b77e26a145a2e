"""
Application configuration using Pydantic Settings.

Automatically loads environment variables from .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str | None = None
    openai_model: str = "gpt-4.1"
    max_output_tokens: int = 8192
    temperature: float = 0.7
    top_p: float = 0.8

    # Page grouping
    group_size: int = 10

    # Retry policy for group, page and field-suggestion calls
    max_retries: int = 5
    retry_delay_seconds: float = 15.0

    # Retry policy for table header detection (linear backoff)
    header_max_retries: int = 3
    header_backoff_seconds: float = 3.0

    # Throttle between table page calls
    table_page_delay_seconds: float = 15.0

    # LRU bound for each cache map, 0 disables eviction
    cache_max_entries: int = 128

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Logging / debug flags
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        # Load from .env file in the package directory
        env_file=Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
        # Case insensitive environment variable names
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration loaded from environment.
    """
    return Settings()
