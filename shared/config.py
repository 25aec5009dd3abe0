"""
Shared configuration management for the Portfolio Edge layer.
"""

from typing import Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PORTFOLIO_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="development")
    log_level: str = Field(default="info")

    # Upstream portfolio API
    api_base_url: str = Field(default="http://localhost:5002/api")

    # Durable cache storage
    cache_storage: str = Field(default="memory")
    cache_dir: str = Field(default=".cache/portfolio")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_prefix: str = Field(default="portfolio:")

    # Cache policy
    default_ttl: int = Field(default=300)
    extended_ttl: int = Field(default=900)
    stale_ttl_multiplier: int = Field(default=12)
    cleanup_interval: float = Field(default=300.0)

    # Fetching
    dev_fetch_timeout: float = Field(default=10.0)
    prod_fetch_timeout: float = Field(default=30.0)

    # Cache warming
    warm_retry_count: int = Field(default=3)
    warm_schedule: Tuple[float, ...] = Field(default=(0.0, 2.0, 5.0, 10.0))
    failed_retry_delay: float = Field(default=5.0)

    # Static snapshots
    static_output_dir: str = Field(default="public/data")
    static_fallback_dir: str = Field(default="src/data")
    static_fetch_timeout: float = Field(default=30.0)
    build_version: str = Field(default="1.0.0")

    # CORS
    allowed_origin: Optional[str] = Field(default=None)

    @property
    def is_production(self) -> bool:
        """True when running with production cache behaviour."""
        return self.env.lower() == "production"


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
