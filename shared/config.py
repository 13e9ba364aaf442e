"""
Shared configuration management for the Tokenization Gateway.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENIZATION_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream services
    registry_host: str = Field(default="http://localhost:31310")
    driver_host: str = Field(default="http://localhost:31312")
    request_timeout: float = Field(default=30.0)

    # Home organization; normally set through /connect and persisted
    home_org: Optional[str] = Field(default=None)
    config_file: str = Field(default="config.yaml")

    # Tokenization workflow
    confirmation_poll_interval: float = Field(default=30.0)
    confirmation_poll_max_attempts: int = Field(default=60)
    update_registry_units: bool = Field(default=True)
    marketplace_name: str = Field(default="Tokenized on Chia")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
