"""
Tests for toolwire.settings
"""

import pytest
from pydantic import ValidationError

from toolwire import __version__
from toolwire.settings import ToolwireSettings, clear_settings_cache, get_settings


class TestToolwireSettings:
    def test_defaults(self):
        settings = ToolwireSettings(_env_file=None)
        assert settings.max_attempts == 3
        assert settings.spawn_settle_seconds == 1.0
        assert settings.handshake_settle_seconds == 1.0
        assert settings.retry_backoff_seconds == 2.0
        assert settings.terminate_grace_seconds == 0.5
        assert settings.request_timeout_seconds == 60.0
        assert settings.client_name == "toolwire"
        assert settings.client_version == __version__

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("TOOLWIRE_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("TOOLWIRE_RETRY_BACKOFF_SECONDS", "0.25")
        monkeypatch.setenv("TOOLWIRE_CLIENT_NAME", "my-host")

        settings = ToolwireSettings(_env_file=None)

        assert settings.max_attempts == 5
        assert settings.retry_backoff_seconds == 0.25
        assert settings.client_name == "my-host"

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValidationError):
            ToolwireSettings(_env_file=None, max_attempts=0)

    def test_timeout_can_be_disabled(self):
        settings = ToolwireSettings(_env_file=None, request_timeout_seconds=None)
        assert settings.request_timeout_seconds is None


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_cache_clear_rereads_environment(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("TOOLWIRE_MAX_ATTEMPTS", "7")
        clear_settings_cache()
        second = get_settings()

        assert second is not first
        assert second.max_attempts == 7
