"""Configuration management for studygen.

Settings are loaded from environment variables (and ``.env``) with validation.
Generation tuning can additionally be overridden from ``studygen.yaml``.
"""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from studygen.core import defaults
from studygen.core.exceptions import ConfigurationError


def _config_search_paths() -> list[Path]:
    return [
        Path(__file__).parent.parent.parent / "studygen.yaml",  # project root
        Path("studygen.yaml"),
        Path.cwd() / "studygen.yaml",
    ]


def load_generation_config() -> dict[str, Any]:
    """Load generation configuration from studygen.yaml.

    Returns:
        Dictionary with:
        - model: Generative model identifier
        - embedding_model: Embedding model identifier
        - base_temperature: Temperature of the first attempt
        - temperature_step: Temperature increase per retry
        - max_retries: Corrective attempts after the first one

    Falls back to environment variables, then hardcoded defaults.
    """
    result: dict[str, Any] = {
        "model": defaults.DEFAULT_GENERATION_MODEL,
        "embedding_model": defaults.DEFAULT_EMBEDDING_MODEL,
        "base_temperature": defaults.BASE_TEMPERATURE,
        "temperature_step": defaults.TEMPERATURE_STEP,
        "max_retries": defaults.GENERATION_MAX_RETRIES,
    }

    for config_path in _config_search_paths():
        if not config_path.exists():
            continue
        try:
            with open(config_path) as f:
                config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError):
            continue
        if not isinstance(config, dict):
            continue
        section = config.get("generation", {})
        if isinstance(section, dict) and section:
            for key in result:
                if key in section:
                    result[key] = section[key]
            return result

    if os.getenv("GENERATION_MODEL"):
        result["model"] = os.environ["GENERATION_MODEL"]
    if os.getenv("EMBEDDING_MODEL"):
        result["embedding_model"] = os.environ["EMBEDDING_MODEL"]
    return result


class Settings(BaseSettings):
    """Application configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Database
    database_url: str = Field(default="", description="PostgreSQL connection string")
    database_pool_min: int = Field(default=2, description="Minimum pool size", ge=1)
    database_pool_max: int = Field(
        default=10, description="Maximum pool size", ge=1, le=100
    )

    # Job queue
    redis_url: str = Field(default="redis://localhost:6379", description="Redis URL")
    queue_backend: Literal["redis", "memory"] = Field(
        default="redis", description="Job store backend"
    )
    queue_name: str = Field(default=defaults.QUEUE_NAME, description="Queue key prefix")
    queue_concurrency: int = Field(
        default=defaults.QUEUE_CONCURRENCY, description="Concurrent jobs", ge=1, le=64
    )
    job_attempts: int = Field(
        default=defaults.JOB_ATTEMPTS, description="Attempts per job", ge=1, le=10
    )
    job_backoff_seconds: float = Field(
        default=defaults.JOB_BACKOFF_SECONDS,
        description="Base delay of exponential retry backoff",
        ge=0.0,
    )
    completed_retention_seconds: int = Field(
        default=defaults.COMPLETED_RETENTION_SECONDS,
        description="How long completed jobs stay pollable",
    )
    completed_retention_count: int = Field(
        default=defaults.COMPLETED_RETENTION_COUNT,
        description="Maximum completed jobs kept",
    )
    failed_retention_seconds: int = Field(
        default=defaults.FAILED_RETENTION_SECONDS,
        description="How long failed jobs stay pollable",
    )
    job_lock_seconds: int = Field(
        default=defaults.JOB_LOCK_SECONDS,
        description="Worker lock TTL before an active job counts as stalled",
        ge=5,
    )
    queue_poll_interval: float = Field(
        default=0.5, description="Idle worker sleep between claims", gt=0.0
    )

    # Generative model
    gemini_api_key: str = Field(
        default="",
        description="Gemini API key",
        validation_alias=AliasChoices("gemini_api_key", "api_key", "google_api_key"),
    )
    generation_model: str = Field(
        default_factory=lambda: load_generation_config()["model"],
        description="Generative model identifier",
    )
    embedding_model: str = Field(
        default_factory=lambda: load_generation_config()["embedding_model"],
        description="Embedding model identifier",
    )
    embedding_dimensions: int = Field(
        default=defaults.EMBEDDING_DIMENSIONS, description="Embedding vector size"
    )

    # Cache
    semantic_threshold: float = Field(
        default=defaults.SEMANTIC_DISTANCE_THRESHOLD,
        description="Maximum (exclusive) cosine distance for a semantic hit",
        gt=0.0,
        le=2.0,
    )
    history_limit: int = Field(default=defaults.HISTORY_LIMIT, ge=1, le=100)

    # API
    api_host: str = Field(default="0.0.0.0", description="API bind host")
    api_port: int = Field(default=3000, description="API port", ge=1, le=65535)
    identity_header: str = Field(
        default="X-User-Id",
        description="Header carrying the authenticated user id from the auth proxy",
    )
    max_upload_bytes: int = Field(default=defaults.MAX_UPLOAD_BYTES, ge=1)
    run_workers_in_api: bool = Field(
        default=True, description="Run the worker pool inside the API process"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "console"] | None = Field(
        default=None, description="Log renderer (defaults by environment)"
    )
    environment: str = Field(
        default="development", description="Environment (development, production)"
    )

    # OpenTelemetry Configuration
    otel_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry instrumentation"
    )
    otel_service_name: str = Field(
        default="studygen", description="Service name for telemetry"
    )
    otel_exporter_otlp_endpoint: str = Field(
        default="http://localhost:4317", description="OTLP gRPC endpoint"
    )
    otel_exporter_otlp_headers: str = Field(
        default="", description="OTLP headers (e.g., 'api-key=xxx')"
    )
    otel_traces_enabled: bool = Field(default=True, description="Enable traces")
    otel_metrics_enabled: bool = Field(default=True, description="Enable metrics")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def require_credentials(self) -> None:
        """Fail fast when the generative model cannot be reached at all.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not self.gemini_api_key:
            raise ConfigurationError(
                "API_KEY is not configured on the server",
                details={"setting": "GEMINI_API_KEY"},
            )


settings = Settings()
