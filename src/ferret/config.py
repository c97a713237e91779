from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://data.dev.masalabs.ai/api/v1"


class AppConfig(BaseModel):
    """Application-specific configuration values."""

    name: str = "Ferret"
    env: str = "development"
    log_level: str = "INFO"
    log_file: Optional[str] = None


class BackendConfig(BaseModel):
    """Asynchronous search backend configuration values."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0


class ConnectorConfig(BaseModel):
    """Validated configuration accepted by `SourceConnector.initialize`."""

    api_key: str = Field(min_length=1)
    base_url: HttpUrl = Field(default=DEFAULT_BASE_URL, validate_default=True)
    timeout: float = Field(default=30.0, gt=0)


class Settings(BaseSettings):
    """Top-level settings loaded from environment variables and .env only."""

    model_config = SettingsConfigDict(
        env_prefix="FERRET_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app: AppConfig = AppConfig()
    backend: BackendConfig = BackendConfig()

    def connector_config(self) -> dict:
        """Raw connector configuration, validated later by the connector itself."""
        return {
            "api_key": self.backend.api_key or "",
            "base_url": self.backend.base_url,
            "timeout": self.backend.timeout,
        }


def load_settings() -> Settings:
    """Load settings from environment variables and .env only."""
    return Settings()  # type: ignore[call-arg]
