"""Unit tests for the configuration module.

This module tests the Settings class and its configuration options,
including environment variable loading, validation, and property methods.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError
from pydantic_settings import SettingsConfigDict

from lenschain.config import Settings, settings


@pytest.fixture
def isolated_settings(monkeypatch, tmp_path):
    """Fixture to create Settings instance without loading .env file.

    This fixture creates a Settings class with env_file pointing to a non-existent file,
    ensuring tests only use environment variables set via monkeypatch.
    """
    non_existent_env_file = str(tmp_path / ".env-nonexistent")

    class TestSettings(Settings):
        model_config = SettingsConfigDict(
            env_file=non_existent_env_file,
            env_file_encoding="utf-8",
            case_sensitive=False,
            extra="ignore",
        )

    for name in (
        "STEP_TIMEOUT_SECONDS",
        "UNRESOLVED_REFERENCE_POLICY",
        "PIPELINE_CATALOG_DIR",
        "LOAD_BUILTIN_PIPELINES",
        "EVENT_HISTORY_SIZE",
        "LOG_LEVEL",
        "ENABLE_TRACING",
        "LANGFUSE_PUBLIC_KEY",
        "LANGFUSE_SECRET_KEY",
        "LANGFUSE_BASE_URL",
        "API_TITLE",
        "ACTION_RUNNER",
    ):
        monkeypatch.delenv(name, raising=False)

    return TestSettings


class TestSettingsDefaults:
    """Test default values when no environment variables are set."""

    def test_default_step_timeout(self, isolated_settings):
        """Test that the step timeout defaults to None (unbounded)."""
        config = isolated_settings()
        assert config.step_timeout_seconds is None

    def test_default_reference_policy(self, isolated_settings):
        """Test that unresolved references default to the literal policy."""
        config = isolated_settings()
        assert config.unresolved_reference_policy == "literal"

    def test_default_catalog_dir(self, isolated_settings):
        """Test that the catalog directory points at the built-in catalog."""
        config = isolated_settings()
        assert config.pipeline_catalog_dir.parts[-2:] == ("configs", "pipelines")
        assert config.pipeline_catalog_dir.is_dir()

    def test_default_load_builtin_pipelines(self, isolated_settings):
        """Test that built-in pipelines are loaded by default."""
        config = isolated_settings()
        assert config.load_builtin_pipelines is True

    def test_default_event_history_size(self, isolated_settings):
        """Test that the event history keeps 1000 events by default."""
        config = isolated_settings()
        assert config.event_history_size == 1000

    def test_default_log_level(self, isolated_settings):
        """Test that the log level defaults to INFO."""
        config = isolated_settings()
        assert config.log_level == "INFO"

    def test_default_langfuse(self, isolated_settings):
        """Test Langfuse defaults."""
        config = isolated_settings()
        assert config.enable_tracing is True
        assert config.langfuse_public_key == ""
        assert config.langfuse_secret_key == ""
        assert config.langfuse_base_url == "https://us.cloud.langfuse.com"

    def test_default_action_runner(self, isolated_settings):
        """Test that no action runner is configured by default."""
        config = isolated_settings()
        assert config.action_runner is None

    def test_default_api_title(self, isolated_settings):
        """Test that the API title has a default."""
        config = isolated_settings()
        assert config.api_title == "lenschain API"


class TestSettingsFromEnvironment:
    """Test loading values from environment variables."""

    def test_step_timeout_from_env(self, isolated_settings, monkeypatch):
        """Test that the step timeout is read from the environment."""
        monkeypatch.setenv("STEP_TIMEOUT_SECONDS", "2.5")
        config = isolated_settings()
        assert config.step_timeout_seconds == 2.5

    def test_case_insensitive_env(self, isolated_settings, monkeypatch):
        """Test that environment variable names are case insensitive."""
        monkeypatch.setenv("step_timeout_seconds", "7")
        config = isolated_settings()
        assert config.step_timeout_seconds == 7.0

    def test_reference_policy_normalized(self, isolated_settings, monkeypatch):
        """Test that the policy name is normalized to lower case."""
        monkeypatch.setenv("UNRESOLVED_REFERENCE_POLICY", " Strict ")
        config = isolated_settings()
        assert config.unresolved_reference_policy == "strict"

    def test_log_level_normalized(self, isolated_settings, monkeypatch):
        """Test that the log level is normalized to upper case."""
        monkeypatch.setenv("LOG_LEVEL", "debug")
        config = isolated_settings()
        assert config.log_level == "DEBUG"

    def test_catalog_dir_from_env(self, isolated_settings, monkeypatch, tmp_path):
        """Test that the catalog directory can be overridden."""
        monkeypatch.setenv("PIPELINE_CATALOG_DIR", str(tmp_path))
        config = isolated_settings()
        assert config.pipeline_catalog_dir == Path(tmp_path)

    def test_load_builtin_from_env(self, isolated_settings, monkeypatch):
        """Test that boolean flags are parsed from strings."""
        monkeypatch.setenv("LOAD_BUILTIN_PIPELINES", "false")
        config = isolated_settings()
        assert config.load_builtin_pipelines is False

    def test_env_file_values(self, monkeypatch, tmp_path):
        """Test that values are read from the .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("STEP_TIMEOUT_SECONDS=3\nAPI_TITLE=Life Events\n")
        monkeypatch.delenv("STEP_TIMEOUT_SECONDS", raising=False)
        monkeypatch.delenv("API_TITLE", raising=False)

        class EnvFileSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=str(env_file),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore",
            )

        config = EnvFileSettings()
        assert config.step_timeout_seconds == 3.0
        assert config.api_title == "Life Events"


class TestSettingsValidation:
    """Test field validators."""

    def test_zero_step_timeout_rejected(self, isolated_settings):
        """Test that a zero step timeout is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            isolated_settings(step_timeout_seconds=0)
        assert "Step timeout must be greater than 0" in str(exc_info.value)

    def test_negative_step_timeout_rejected(self, isolated_settings):
        """Test that a negative step timeout is rejected."""
        with pytest.raises(ValidationError):
            isolated_settings(step_timeout_seconds=-1)

    def test_unknown_policy_rejected(self, isolated_settings):
        """Test that an unknown reference policy is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            isolated_settings(unresolved_reference_policy="lenient")
        assert "literal" in str(exc_info.value)

    def test_unknown_log_level_rejected(self, isolated_settings):
        """Test that an unknown log level is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            isolated_settings(log_level="verbose")
        assert "Unknown log level" in str(exc_info.value)

    def test_negative_history_size_rejected(self, isolated_settings):
        """Test that a negative event history size is rejected."""
        with pytest.raises(ValidationError):
            isolated_settings(event_history_size=-5)

    def test_zero_history_size_allowed(self, isolated_settings):
        """Test that a zero event history size disables the history."""
        config = isolated_settings(event_history_size=0)
        assert config.event_history_size == 0

    def test_action_runner_path(self, isolated_settings, monkeypatch):
        """Test that a module:attribute runner path is accepted from the environment."""
        monkeypatch.setenv("ACTION_RUNNER", " lens_handlers:build_runner ")
        config = isolated_settings()
        assert config.action_runner == "lens_handlers:build_runner"

    def test_blank_action_runner_is_none(self, isolated_settings):
        """Test that a blank runner path means no runner."""
        assert isolated_settings(action_runner="  ").action_runner is None

    def test_malformed_action_runner_rejected(self, isolated_settings):
        """Test that a runner path without an attribute is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            isolated_settings(action_runner="lens_handlers")
        assert "module:attribute" in str(exc_info.value)


class TestSettingsProperties:
    """Test computed properties."""

    def test_tracing_configured_without_keys(self, isolated_settings):
        """Test that tracing is not configured without credentials."""
        config = isolated_settings()
        assert config.tracing_configured is False

    def test_tracing_configured_with_keys(self, isolated_settings):
        """Test that tracing is configured when both keys are present."""
        config = isolated_settings(langfuse_public_key="pk", langfuse_secret_key="sk")
        assert config.tracing_configured is True

    def test_tracing_requires_both_keys(self, isolated_settings):
        """Test that one key alone is not enough."""
        config = isolated_settings(langfuse_public_key="pk")
        assert config.tracing_configured is False


class TestGlobalSettings:
    """Test the module-level settings instance."""

    def test_global_settings_instance(self):
        """Test that the global settings object is a Settings instance."""
        assert isinstance(settings, Settings)
