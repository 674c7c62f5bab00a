"""Tests for environment-driven settings."""

import logging

import pytest

from honeypot.config import Settings, validate_config

VARS = ("PORT", "API_KEY", "OPENAI_API_KEY", "OPENAI_MODEL", "FINAL_CALLBACK_URL",
        "MAX_TURNS", "LOOKUP_WINDOW", "LOG_LEVEL")


@pytest.fixture
def clean_env(monkeypatch):
    for var in VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.port == 3000
        assert settings.max_turns == 10
        assert settings.lookup_window == 8
        assert settings.openai_model == "gpt-4o-mini"
        assert settings.api_key is None

    def test_overrides(self, clean_env):
        clean_env.setenv("PORT", "8080")
        clean_env.setenv("MAX_TURNS", "6")
        clean_env.setenv("FINAL_CALLBACK_URL", "http://hook.test")
        clean_env.setenv("LOG_LEVEL", "debug")
        settings = Settings.from_env()
        assert settings.port == 8080
        assert settings.max_turns == 6
        assert settings.callback_url == "http://hook.test"
        assert settings.log_level == "DEBUG"

    def test_bad_integer_uses_default(self, clean_env):
        clean_env.setenv("MAX_TURNS", "ten")
        assert Settings.from_env().max_turns == 10

    def test_validate_warns_for_missing(self, caplog):
        with caplog.at_level(logging.WARNING, logger="honeypot.config"):
            validate_config(Settings(api_key="k"))
        messages = " ".join(r.getMessage() for r in caplog.records)
        assert "OPENAI_API_KEY" in messages
        assert "FINAL_CALLBACK_URL" in messages
        assert not any(r.getMessage().startswith("API_KEY ") for r in caplog.records)
        assert "x-api-key authentication is disabled" not in messages
