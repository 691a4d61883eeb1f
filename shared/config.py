"""
Shared configuration management for the access authorization layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Observability
    metrics_enabled: bool = Field(default=True)


class AuthorizationConfig(BaseConfig):
    """Authorization engine configuration."""

    service_name: str = Field(default="authorization")

    # Partitioning
    guard_name: str = Field(default="web")
    scope: Optional[str] = Field(default=None)

    # Cache layer
    cache_enabled: bool = Field(default=True)
    cache_backend: str = Field(default="memory")
    cache_tag: str = Field(default="access-authorization")


def get_config(**overrides) -> AuthorizationConfig:
    """Get authorization configuration, environment first, overrides last."""
    return AuthorizationConfig(**overrides)
