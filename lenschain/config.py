"""Configuration management for the application.

This module provides a centralized configuration system that loads settings
from environment variables (via .env file) with sensible defaults.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables with defaults."""

    model_config = SettingsConfigDict(
        # Look for .env file in the repository root (parent of lenschain)
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Execution Configuration
    step_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Default deadline for a single step invocation. None means unbounded.",
    )
    unresolved_reference_policy: str = Field(
        default="literal",
        description="What to do with an unresolved $variable reference: 'literal' or 'strict'",
    )
    action_runner: Optional[str] = Field(
        default=None,
        description=(
            "Action runner to wire into the service, as 'module:attribute'. The attribute "
            "is a runner instance or a zero-argument factory returning one. None means an "
            "in-process LensActionRunner with no handlers registered"
        ),
    )

    # Pipeline Catalog Configuration
    pipeline_catalog_dir: Path = Field(
        default=Path(__file__).parent / "configs" / "pipelines",
        description="Directory holding pipeline definition YAML files",
    )
    load_builtin_pipelines: bool = Field(
        default=True,
        description="Whether to load the pipeline catalog into the default registry",
    )

    # Events Configuration
    event_history_size: int = Field(
        default=1000,
        description="Number of published events kept by the in-memory event bus",
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Root logging level for process entry points",
    )

    # Langfuse Configuration
    enable_tracing: bool = Field(
        default=True,
        description="Whether pipeline runs are traced (requires Langfuse credentials)",
    )

    langfuse_secret_key: str = Field(default="", description="Langfuse Secret Key")

    langfuse_public_key: str = Field(default="", description="Langfuse Public Key")

    langfuse_base_url: str = Field(
        default="https://us.cloud.langfuse.com", description="Langfuse Base URL"
    )

    # API Configuration
    api_title: str = Field(
        default="lenschain API",
        description="Title reported by the HTTP API",
    )

    @field_validator("step_timeout_seconds")
    @classmethod
    def validate_step_timeout(cls, v: Optional[float]) -> Optional[float]:
        """Validate that the step timeout is positive when set."""
        if v is not None and v <= 0:
            raise ValueError("Step timeout must be greater than 0")
        return v

    @field_validator("unresolved_reference_policy")
    @classmethod
    def validate_reference_policy(cls, v: str) -> str:
        """Validate the unresolved reference policy name."""
        normalized = v.strip().lower()
        if normalized not in ("literal", "strict"):
            raise ValueError("Unresolved reference policy must be 'literal' or 'strict'")
        return normalized

    @field_validator("action_runner")
    @classmethod
    def validate_action_runner(cls, v: Optional[str]) -> Optional[str]:
        """Validate the 'module:attribute' form of the action runner path."""
        if v is None or not v.strip():
            return None
        module_name, _, attribute = v.strip().partition(":")
        if not module_name or not attribute:
            raise ValueError("Action runner must be given as 'module:attribute'")
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that the log level is a known logging level name."""
        normalized = v.strip().upper()
        if normalized not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return normalized

    @field_validator("event_history_size")
    @classmethod
    def validate_event_history_size(cls, v: int) -> int:
        """Validate that the event history size is not negative."""
        if v < 0:
            raise ValueError("Event history size must be 0 or greater")
        return v

    @property
    def tracing_configured(self) -> bool:
        """Whether Langfuse credentials are present."""
        return bool(self.langfuse_public_key and self.langfuse_secret_key)


# Global settings instance
settings = Settings()
