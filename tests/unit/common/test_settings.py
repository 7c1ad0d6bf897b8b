"""Tests for environment-driven settings."""

import pytest

from pkms.core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("PKMS_DATABASE_URL", "PKMS_POLICY_DATABASE_URL", "PKMS_LOG_LEVEL", "PKMS_FILE_LOGGING"):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for Settings."""

    def test_policy_database_defaults_to_catalog(self, monkeypatch):
        monkeypatch.setenv("PKMS_DATABASE_URL", "sqlite:///catalog.db")

        settings = Settings(_env_file=None)

        assert settings.policy_db_url == "sqlite:///catalog.db"

    def test_separate_policy_database(self, monkeypatch):
        monkeypatch.setenv("PKMS_DATABASE_URL", "sqlite:///catalog.db")
        monkeypatch.setenv("PKMS_POLICY_DATABASE_URL", "sqlite:///policy.db")

        assert Settings(_env_file=None).policy_db_url == "sqlite:///policy.db"

    def test_logging_from_env(self, monkeypatch):
        monkeypatch.setenv("PKMS_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("PKMS_FILE_LOGGING", "true")

        settings = Settings(_env_file=None)

        assert settings.log_level == "DEBUG"
        assert settings.file_logging is True

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
