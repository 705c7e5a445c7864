"""Tests for configuration management."""

import pytest
from pydantic import ValidationError

from mwaction.config import MwActionSettings, get_settings, reset_settings


class TestDefaults:
    def test_defaults(self):
        """Settings load with no environment at all."""
        settings = get_settings()
        assert settings.api_url is None
        assert settings.login_assert == "none"
        assert settings.timeout == 120.0
        assert settings.log_format == "console"
        assert settings.max_workers == 4

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_rereads_environment(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("MWACTION_TIMEOUT", "9")
        reset_settings()
        second = get_settings()
        assert second is not first
        assert second.timeout == 9.0


class TestGetSiteConfig:
    """Tests for MwActionSettings.get_site_config."""

    def test_anonymous_site(self, monkeypatch):
        monkeypatch.setenv("MWACTION_API_URL", "https://wiki.example.org/w/api.php")
        monkeypatch.setenv("MWACTION_USER_AGENT", "tests/1.0")
        reset_settings()

        config = get_settings().get_site_config()
        assert config == {
            "api_url": "https://wiki.example.org/w/api.php",
            "login_assert": "none",
            "timeout": 120.0,
            "user_agent": "tests/1.0",
        }

    def test_missing_api_url(self):
        with pytest.raises(ValueError, match="MWACTION_API_URL"):
            get_settings().get_site_config()

    def test_login_assert_needs_credentials(self, monkeypatch):
        monkeypatch.setenv("MWACTION_API_URL", "https://wiki.example.org/w/api.php")
        monkeypatch.setenv("MWACTION_LOGIN_ASSERT", "bot")
        monkeypatch.setenv("MWACTION_USERNAME", "Bot@task")
        reset_settings()

        with pytest.raises(ValueError, match="MWACTION_PASSWORD"):
            get_settings().get_site_config()

    def test_password_is_secret(self, monkeypatch):
        monkeypatch.setenv("MWACTION_PASSWORD", "hunter2")
        reset_settings()
        settings = get_settings()
        assert "hunter2" not in repr(settings)
        assert settings.password.get_secret_value() == "hunter2"


class TestValidation:
    def test_invalid_login_assert(self):
        with pytest.raises(ValidationError):
            MwActionSettings(login_assert="admin")

    def test_max_workers_must_be_positive(self):
        with pytest.raises(ValidationError, match="max_workers"):
            MwActionSettings(max_workers=0)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError, match="timeout"):
            MwActionSettings(timeout=0)

    def test_env_file_is_read(self, isolated_settings):
        (isolated_settings / ".env").write_text("MWACTION_MAX_WORKERS=8\n")
        assert MwActionSettings().max_workers == 8
