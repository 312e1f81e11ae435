"""
Configuration settings for memoria.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATA_DIR = Path.home() / ".memoria"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_DATA_DIR / 'memoria.db'}",
        description="SQLAlchemy connection string",
    )
    default_user: str = Field(
        default="local",
        description="User scope used by the CLI when --user is not given",
    )

    # ========================================
    # AI Integration (due-date overrides)
    # ========================================
    gemini_api_key: str | None = Field(
        default=None,
        description="Google Generative AI (Gemini) API key",
    )
    gemini_api_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Base URL of the Gemini REST API",
    )
    ai_model: str = Field(
        default="gemini-2.0-flash",
        description="AI model used to reschedule cards after a graded test",
    )
    oracle_timeout_ms: int = Field(
        default=30000,
        description="Timeout for a single oracle request in milliseconds",
    )
    oracle_retry_attempts: int = Field(
        default=3,
        description="Attempts per card before an oracle call is reported as failed",
    )
    override_failure_policy: Literal["isolate", "fail_fast"] = Field(
        default="isolate",
        description="'isolate' skips a failed card and continues; 'fail_fast' aborts the batch",
    )
    default_language: str = Field(
        default="English",
        description="Language of the oracle's explanation text",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    def has_ai_configured(self) -> bool:
        """Check if the override oracle can be reached."""
        return bool(self.gemini_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None, log_file: str | None = None) -> None:
    """Replace loguru's default sink with the configured ones."""
    settings = get_settings()
    level = level or settings.log_level
    log_file = log_file or settings.log_file

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if log_file:
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention=5)
