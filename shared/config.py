"""
Shared configuration management for the Portal client.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    app_name: str = Field(default="portal")
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Remote API
    base_url: str = Field(default="http://localhost:3000")
    path_prefix: str = Field(default="api")
    request_timeout: float = Field(default=30.0)


class PortalConfig(BaseConfig):
    """Process-wide orchestration settings, set once at startup."""

    # Query defaults (milliseconds)
    default_stale_time: int = Field(default=60_000)
    default_cache_time: int = Field(default=300_000)
    default_refetch_on_focus: bool = Field(default=False)

    # Orchestration
    deduplicate_requests: bool = Field(default=True)
    refresh_delay_ms: int = Field(default=50)
    cache_max_age_ms: int = Field(default=60 * 60 * 1000)

    # Persistent storage
    storage_backend: str = Field(default="local")
    redis_url: str = Field(default="redis://localhost:6379/0")
    auth_token_key: Optional[str] = Field(default=None)

    @property
    def cache_key_prefix(self) -> str:
        return f"{self.app_name}-cache-"

    @property
    def token_storage_key(self) -> str:
        return self.auth_token_key or f"{self.app_name}-auth-token"


def get_config(**overrides) -> PortalConfig:
    """Get configuration, applying explicit overrides over the environment."""
    return PortalConfig(**overrides)
