# healthmon/config.py
"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from healthmon.constants import ArchivalLimits


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="SQLAlchemy connection URL for the account store",
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    LOG_JSON: bool = Field(
        default=False,
        description="Emit single-line JSON logs instead of the human-readable format",
    )

    # Notifications
    NOTIFICATIONS_ENABLED: bool = Field(
        default=True,
        description="Send lifecycle notifications to the notification sink",
    )

    # Permanent deletion
    PURGE_CLAIM_TIMEOUT_MINUTES: int = Field(
        default=ArchivalLimits.PURGE_CLAIM_TIMEOUT_MINUTES,
        ge=1,
        description="Minutes after which an unfinished deletion claim can be taken over",
    )

    # Bulk archival
    BULK_ARCHIVE_MAX_SUBJECTS: int = Field(
        default=500,
        ge=1,
        description="Maximum number of subjects accepted in one bulk archive call",
    )
    BULK_ARCHIVE_MAX_WORKERS: int = Field(
        default=1,
        ge=1,
        le=32,
        description="Worker threads for bulk archive (1 = sequential)",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
