"""
Configuration and settings for the portfolio backend.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    cors_origins: str = Field(default="*")
    log_level: str = Field(default="INFO")

    # Database (SQLite file next to the working directory by default)
    database_url: str = Field(default="sqlite+pysqlite:///./portfolio.db")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Startup initialization retries
    init_max_attempts: int = Field(default=3, ge=1)
    init_retry_delay_seconds: float = Field(default=2.0, ge=0)

    # Per-operation retries on transient storage errors
    db_retry_attempts: int = Field(default=3, ge=1)
    db_retry_delay_seconds: float = Field(default=0.1, ge=0)

    @property
    def cors_origin_list(self) -> list[str]:
        if "*" in self.cors_origins:
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
