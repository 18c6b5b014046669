"""Configuration management for the record rule engine.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. Configuration is loaded once and is
immutable during runtime.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration settings.

    Settings are loaded from environment variables (``RECORDRULES_`` prefix)
    and .env files. All configuration values are validated at load time.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="RECORDRULES_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = "recordrules"
    environment: Literal["development", "production", "testing"] = "development"
    debug: bool = False

    # Decision Settings
    default_deny: bool = Field(
        default=False,
        description="Deny access when no rule governs an entity/operation pair",
    )

    # Decision Cache Settings
    cache_enabled: bool = True
    decision_cache_ttl_seconds: int | None = None  # None = kept until cleared

    # Database Settings
    database_url: str = "sqlite+aiosqlite:///./rr_data/recordrules.db"
    db_echo: bool = False

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    @field_validator("decision_cache_ttl_seconds")
    @classmethod
    def validate_cache_ttl(cls, v: int | None) -> int | None:
        """Validate the cache TTL is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("decision_cache_ttl_seconds must be positive or unset")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == "testing"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Cached settings instance.
    """
    return Settings()
