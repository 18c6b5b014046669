"""Tests for configuration management."""

import pytest
from pydantic import ValidationError

from recordrules.core.config import Settings, get_settings


class TestSettings:
    """Test Settings loading and validation."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.default_deny is False
        assert settings.cache_enabled is True
        assert settings.decision_cache_ttl_seconds is None
        assert settings.database_url.startswith("sqlite+aiosqlite")

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("RECORDRULES_DEFAULT_DENY", "true")
        monkeypatch.setenv("RECORDRULES_DECISION_CACHE_TTL_SECONDS", "30")

        settings = Settings(_env_file=None)
        assert settings.default_deny is True
        assert settings.decision_cache_ttl_seconds == 30

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError, match="must be positive"):
            Settings(_env_file=None, decision_cache_ttl_seconds=0)

    def test_environment_flags(self):
        assert Settings(_env_file=None, environment="production").is_production
        assert Settings(_env_file=None, environment="testing").is_testing
        assert Settings(_env_file=None).is_development

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
