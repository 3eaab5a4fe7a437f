"""
AssetLogix - Configuration
==========================
Environment-based settings using pydantic-settings.
"""

from functools import lru_cache
from typing import List, Optional
import sys

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Database Configuration
    # ==========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/assetlogix.db",
        description="SQLAlchemy async database URL"
    )

    # ==========================================================================
    # File Storage Configuration
    # ==========================================================================
    upload_dir: str = Field(
        default="public/uploads",
        description="Root directory for uploaded documents and images"
    )
    max_upload_size_mb: int = Field(default=50, ge=1)
    max_image_size_mb: int = Field(default=5, ge=1)

    # ==========================================================================
    # Authentication Configuration
    # ==========================================================================
    session_secret: str = Field(..., description="Secret used for session tokens (required)")
    session_ttl_hours: int = Field(default=24)

    admin_username: Optional[str] = Field(default=None, description="Bootstrap administrator username")
    admin_password: Optional[str] = Field(default=None)
    admin_email: str = Field(default="admin@assetlogix.local")

    # ==========================================================================
    # HTTP Configuration
    # ==========================================================================
    cors_origins: List[str] = Field(
        default=["http://localhost:5000", "http://localhost:3000"]
    )
    rate_limit_per_minute: int = Field(default=120)
    rate_limit_burst: Optional[int] = Field(default=None)

    # ==========================================================================
    # Email Notifications
    # ==========================================================================
    sendgrid_api_key: Optional[str] = Field(
        default=None,
        description="SendGrid API key. Emails are only logged when unset."
    )
    sendgrid_base_url: str = Field(default="https://api.sendgrid.com")
    mail_from: str = Field(default="notifications@assetlogix.local")

    # ==========================================================================
    # Runtime Configuration
    # ==========================================================================
    environment: str = Field(default="production")
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.sendgrid_api_key)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Only async drivers are supported."""
        if not (v.startswith("sqlite+aiosqlite://") or v.startswith("postgresql+asyncpg://")):
            raise ValueError(
                "DATABASE_URL must use an async driver "
                "(sqlite+aiosqlite:// or postgresql+asyncpg://)"
            )
        return v

    @field_validator("session_secret")
    @classmethod
    def validate_session_secret(cls, v: str) -> str:
        """Validate session secret is not empty or default."""
        import logging

        if not v or v.strip() == "":
            raise ValueError("SESSION_SECRET must not be empty")

        # logging is not configured yet while settings load
        if v in ["secret", "changeme", "assetlogix", "CHANGE_ME_IN_PRODUCTION"] or len(v) < 16:
            logger = logging.getLogger("config")
            logger.warning(
                "Using a default/weak session secret. Set a strong secret in production!",
                extra={"secret_pattern": "weak"}
            )
            print(
                "⚠️  WARNING: Using a default/weak session secret. "
                "Set a strong secret in production!",
                file=sys.stderr
            )
        return v

    @field_validator("session_ttl_hours")
    @classmethod
    def validate_session_ttl(cls, v: int) -> int:
        if v < 1 or v > 720:
            raise ValueError("session_ttl_hours must be between 1 and 720")
        return v

    @field_validator("rate_limit_per_minute")
    @classmethod
    def validate_rate_limit(cls, v: int) -> int:
        if v < 1 or v > 10000:
            raise ValueError("rate_limit_per_minute must be between 1 and 10000")
        return v

    @model_validator(mode="after")
    def validate_upload_limits(self) -> "Settings":
        """Image uploads cannot be larger than the general upload limit."""
        if self.max_image_size_mb > self.max_upload_size_mb:
            raise ValueError(
                f"max_image_size_mb ({self.max_image_size_mb}) must not exceed "
                f"max_upload_size_mb ({self.max_upload_size_mb})"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment on every call.
    """
    return Settings()
