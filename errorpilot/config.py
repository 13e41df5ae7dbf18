"""Configuration loading for the Errorpilot telemetry layer.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Build per-backend connection configs for the adapters
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from errorpilot.core.models import BackendConfig


def _validate_url(v: str, field_name: str) -> str:
    if not v.startswith(("http://", "https://")):
        raise ValueError(f"{field_name} must start with http:// or https://")
    return v.rstrip("/")


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Loki configuration
    loki_url: str = Field(
        default="http://localhost:3100",
        description="Grafana Loki API endpoint URL",
    )
    loki_org_id: str = Field(
        default=BackendConfig.DEFAULT_ORG_ID,
        description="Loki tenant ID sent as X-Scope-OrgID",
    )
    loki_username: str = Field(
        default="",
        description="Loki basic auth username",
    )
    loki_password: str = Field(
        default="",
        description="Loki basic auth password",
    )

    # Tempo configuration
    tempo_url: str = Field(
        default="",
        description="Grafana Tempo API endpoint URL (empty disables tracing)",
    )
    tempo_org_id: str = Field(
        default=BackendConfig.DEFAULT_ORG_ID,
        description="Tempo tenant ID sent as X-Scope-OrgID",
    )
    tempo_username: str = Field(
        default="",
        description="Tempo basic auth username",
    )
    tempo_password: str = Field(
        default="",
        description="Tempo basic auth password",
    )

    # Deployment environment
    environment: str = Field(
        default="",
        description="Environment tag added to every log query (empty for none)",
    )
    environment_label: str = Field(
        default="environment",
        description="Loki label holding the environment tag",
    )

    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for backend HTTP requests in seconds",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    @field_validator("loki_url")
    @classmethod
    def validate_loki_url(cls, v: str) -> str:
        """Ensure the Loki URL is an HTTP(S) URL."""
        return _validate_url(v, "loki_url")

    @field_validator("tempo_url")
    @classmethod
    def validate_tempo_url(cls, v: str) -> str:
        """Ensure the Tempo URL, when set, is an HTTP(S) URL."""
        if not v:
            return v
        return _validate_url(v, "tempo_url")

    @field_validator("http_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Ensure timeout is positive."""
        if v <= 0:
            raise ValueError("http_timeout_seconds must be positive")
        return v

    def loki_config(self) -> BackendConfig:
        """Build the Loki connection config."""
        return BackendConfig(
            url=self.loki_url,
            org_id=self.loki_org_id,
            username=self.loki_username or None,
            password=self.loki_password or None,
            environment=self.environment or None,
            environment_label=self.environment_label,
        )

    def tempo_config(self) -> BackendConfig | None:
        """Build the Tempo connection config, or None if Tempo is not configured."""
        if not self.tempo_url:
            return None
        return BackendConfig(
            url=self.tempo_url,
            org_id=self.tempo_org_id,
            username=self.tempo_username or None,
            password=self.tempo_password or None,
        )


def load_settings(env_file: str | None = None) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
