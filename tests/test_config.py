"""
Unit tests for configuration management.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from autoheal.config.settings import (
    DEFAULT_BRAND_DOMAINS,
    DEFAULT_FREE_MODELS,
    Settings,
    get_settings,
)


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Test default settings values."""
        settings = Settings(_env_file=None)

        assert settings.ai_provider == "openrouter"
        assert settings.ai_free_models == DEFAULT_FREE_MODELS
        assert settings.tests_dir == Path("src/tests")
        assert settings.results_dir == Path("test-results")
        assert settings.placeholder_domain == "https://example.com"
        assert settings.id_prefix_domains == {"ED": "https://www.endpointclinical.com"}
        assert settings.brand_domains == DEFAULT_BRAND_DOMAINS
        assert settings.runner_command == "npx playwright test"
        assert settings.runner_timeout_seconds == 180
        assert settings.healing_max_attempts == 3
        assert settings.api_port == 3001
        assert settings.log_level == "INFO"

    def test_settings_from_env(self):
        """Test loading settings from environment variables."""
        with patch.dict(os.environ, {
            "AI_PROVIDER": "OpenAI",
            "OPENAI_API_KEY": "sk-test",
            "AI_FREE_MODELS": "a/one, b/two,,",
            "HEALING_MAX_ATTEMPTS": "5",
            "ID_PREFIX_DOMAINS": '{"qa": "https://qa.acme.test"}',
            "LOG_LEVEL": "debug",
        }):
            settings = Settings(_env_file=None)

            assert settings.ai_provider == "openai"
            assert settings.ai_configured
            assert settings.ai_free_models == ["a/one", "b/two"]
            assert settings.healing_max_attempts == 5
            assert settings.id_prefix_domains == {"QA": "https://qa.acme.test"}
            assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "field,value,match",
        [
            ("ai_provider", "anthropic", "Invalid AI provider"),
            ("log_level", "LOUD", "Invalid log level"),
            ("log_format", "xml", "Invalid log format"),
        ],
    )
    def test_validators(self, field, value, match):
        with pytest.raises(ValueError, match=match):
            Settings(_env_file=None, **{field: value})

    @pytest.mark.parametrize(
        "field,value",
        [
            ("healing_max_attempts", 0),
            ("runner_timeout_seconds", 0),
            ("runner_max_output_bytes", 100),
            ("api_port", 70000),
            ("ai_temperature", 3.0),
        ],
    )
    def test_numeric_bounds(self, field, value):
        with pytest.raises(ValueError):
            Settings(_env_file=None, **{field: value})

    def test_configured_flags(self):
        settings = Settings(
            _env_file=None,
            jira_host="https://acme.atlassian.net",
            jira_email="qa@acme.test",
            jira_api_token="token",
            testrail_host="https://acme.testrail.io",
            testrail_username="qa",
        )

        assert settings.jira_configured
        assert not settings.testrail_configured

    def test_ai_configured_by_provider(self):
        assert Settings(_env_file=None, ai_provider="local").ai_configured
        assert not Settings(_env_file=None, ai_provider="disabled").ai_configured
        assert not Settings(_env_file=None, ai_provider="openrouter", openrouter_api_key="").ai_configured

    def test_create_directories(self, tmp_path):
        settings = Settings(
            _env_file=None,
            tests_dir=tmp_path / "tests",
            results_dir=tmp_path / "results",
            data_dir=tmp_path / "data",
        )

        settings.create_directories()

        assert (tmp_path / "tests").is_dir()
        assert (tmp_path / "results").is_dir()
        assert (tmp_path / "data").is_dir()


class TestGetSettings:
    """Test the cached settings accessor."""

    def test_cached(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
            assert (tmp_path / "src" / "tests").is_dir()
        finally:
            get_settings.cache_clear()
