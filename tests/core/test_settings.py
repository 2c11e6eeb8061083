"""Tests for EngineSettings."""

import pytest
from pydantic import ValidationError

from modelchain.core.settings import EngineSettings, get_settings, reset_settings


class TestEngineSettings:
    """Defaults and environment overrides."""

    def test_defaults(self, monkeypatch):
        for key in (
            "MODELCHAIN_STATE_MAX_KEYS",
            "MODELCHAIN_LOG_LEVEL",
            "MODELCHAIN_DEFAULT_RETRIES",
            "MODELCHAIN_LOG_CACHE_LOGGERS",
        ):
            monkeypatch.delenv(key, raising=False)
        settings = EngineSettings(_env_file=None)
        assert settings.state_max_keys == 10_000
        assert settings.default_retries == 3
        assert settings.default_circuit_timeout == 10.0
        assert settings.log_json is None
        assert settings.service_name == "modelchain"
        assert settings.log_cache_loggers is True

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("MODELCHAIN_STATE_MAX_KEYS", "50")
        monkeypatch.setenv("MODELCHAIN_LOG_JSON", "true")
        settings = EngineSettings(_env_file=None)
        assert settings.state_max_keys == 50
        assert settings.log_json is True

    def test_rejects_non_positive_bound(self, monkeypatch):
        monkeypatch.setenv("MODELCHAIN_STATE_MAX_KEYS", "0")
        with pytest.raises(ValidationError):
            EngineSettings(_env_file=None)


class TestCachedSettings:
    """get_settings / reset_settings."""

    def test_cached(self):
        assert get_settings() is get_settings()

    def test_reset_rereads_environment(self, monkeypatch):
        monkeypatch.setenv("MODELCHAIN_DEFAULT_RETRIES", "1")
        reset_settings()
        assert get_settings().default_retries == 1
        monkeypatch.setenv("MODELCHAIN_DEFAULT_RETRIES", "5")
        assert get_settings().default_retries == 1
        reset_settings()
        assert get_settings().default_retries == 5
