"""
Shared configuration management for the Rodin Access Gateway.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RODIN_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")


class GatewayConfig(BaseConfig):
    """Gateway configuration: upstream access, price-list cache and fetch policy."""

    host: str = "0.0.0.0"
    port: int = 8000

    # Upstream Rodin B2B API
    api_base_url: str = Field(default="https://rodin.com.mx/b2b/api")
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)
    token_ttl_seconds: int = Field(default=3000, ge=0)
    clients_timeout_seconds: float = Field(default=15.0, gt=0)

    # Price-list cache
    max_entries: int = Field(default=200, ge=1)
    ttl_seconds: float = Field(default=6 * 60 * 60, gt=0)
    eviction_sweep_interval_seconds: float = Field(default=60 * 60, gt=0)
    eviction_fraction: float = Field(default=0.2, gt=0, le=1)
    max_visible_skus_per_request: int = Field(default=100, ge=1)

    # Fetch policy per client kind
    email_retry_attempts: int = Field(default=2, ge=1)
    code_retry_attempts: int = Field(default=3, ge=1)
    default_timeout_ms: int = Field(default=30000, gt=0)
    max_timeout_ms: int = Field(default=30000, gt=0)
    fallback_timeout_ms: int = Field(default=10000, gt=0)
    fallback_limit: int = Field(default=100, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0)
    single_flight: bool = Field(default=True)

    # Circuit breaker around Rodin calls
    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_recovery_timeout: float = Field(default=30.0, gt=0)


def get_config(**overrides) -> GatewayConfig:
    """Get gateway configuration, with optional explicit overrides."""
    return GatewayConfig(**overrides)
