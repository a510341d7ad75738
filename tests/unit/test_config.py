"""Unit tests for configuration management."""

import pytest
from pydantic import ValidationError

from studygen.core import config as config_module
from studygen.core.config import Settings, load_generation_config
from studygen.core.exceptions import ConfigurationError


class TestSettings:
    """Tests for Settings configuration model."""

    def test_defaults(self, monkeypatch):
        for name in ("GEMINI_API_KEY", "API_KEY", "GOOGLE_API_KEY", "DATABASE_URL"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.database_url == ""
        assert settings.queue_name == "flashcard-generation"
        assert settings.queue_concurrency == 5
        assert settings.job_attempts == 3
        assert settings.semantic_threshold == 0.25
        assert settings.identity_header == "X-User-Id"
        assert settings.api_port == 3000
        assert settings.otel_enabled is False

    @pytest.mark.parametrize("env_name", ["GEMINI_API_KEY", "API_KEY"])
    def test_api_key_aliases(self, monkeypatch, env_name):
        monkeypatch.setenv(env_name, "secret")
        assert Settings(_env_file=None).gemini_api_key == "secret"

    def test_require_credentials(self, monkeypatch):
        for name in ("GEMINI_API_KEY", "API_KEY", "GOOGLE_API_KEY"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ConfigurationError, match="API_KEY is not configured"):
            Settings(_env_file=None).require_credentials()

    def test_bounds_validated(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, queue_concurrency=0)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, semantic_threshold=0.0)

    def test_is_production(self):
        assert Settings(_env_file=None, environment="Production").is_production
        assert not Settings(_env_file=None, environment="development").is_production


class TestGenerationConfig:
    def test_yaml_section_overrides_defaults(self, tmp_path, monkeypatch):
        path = tmp_path / "studygen.yaml"
        path.write_text("generation:\n  model: gemini-test\n  max_retries: 4\n")
        monkeypatch.setattr(config_module, "_config_search_paths", lambda: [path])

        result = load_generation_config()

        assert result["model"] == "gemini-test"
        assert result["max_retries"] == 4
        assert result["base_temperature"] == 0.2

    def test_env_fallback_without_yaml(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            config_module, "_config_search_paths", lambda: [tmp_path / "missing.yaml"]
        )
        monkeypatch.setenv("GENERATION_MODEL", "gemini-env")

        result = load_generation_config()

        assert result["model"] == "gemini-env"
        assert result["temperature_step"] == 0.1

    def test_malformed_yaml_ignored(self, tmp_path, monkeypatch):
        path = tmp_path / "studygen.yaml"
        path.write_text("generation: [unclosed\n")
        monkeypatch.setattr(config_module, "_config_search_paths", lambda: [path])
        monkeypatch.delenv("GENERATION_MODEL", raising=False)

        assert load_generation_config()["model"] == "gemini-2.5-flash"
