"""
Shared configuration management for the Storefront API.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Response cache
    cache_enabled: bool = Field(default=True)
    cache_default_ttl_ms: int = Field(default=300_000)
    cache_max_entries: int = Field(default=5000)
    cache_sweep_interval_seconds: float = Field(default=60.0)
    cache_header_name: str = Field(default="X-Cache")

    # Security
    admin_token: str = Field(default="change-me")

    # CORS
    cors_origins: Optional[str] = Field(default=None)


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
