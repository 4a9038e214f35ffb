"""
Shared configuration management for the River Monitoring Portal.
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
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local", description="local | staging | production")
    log_level: str = Field(default="info")

    # Persistence (unset -> in-memory store)
    postgres_dsn: Optional[str] = Field(default=None)

    # Security
    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expire_seconds: int = Field(default=7 * 24 * 3600)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    cors_origins: str = Field(default="*", description="Comma separated origins")

    # External feed / sync job
    feed_url: Optional[str] = Field(default=None)
    feed_timeout_ms: int = Field(default=15000)
    sync_enabled: bool = Field(default=False)
    sync_interval_ms: int = Field(default=300000)
    sync_default_source: str = Field(default="BBWS")

    # Read-through cache TTLs
    stations_list_ttl_ms: int = Field(default=60000)
    water_levels_list_ttl_ms: int = Field(default=10000)
    infographics_list_ttl_ms: int = Field(default=30000)
    infographic_item_ttl_ms: int = Field(default=60000)

    # Public feedback box
    feedback_rate_limit: int = Field(default=5)
    feedback_rate_window_seconds: int = Field(default=900)

    # Optional SUPER_ADMIN bootstrap on startup
    bootstrap_admin_email: Optional[str] = Field(default=None)
    bootstrap_admin_password: Optional[str] = Field(default=None)
    bootstrap_admin_name: str = Field(default="Super Admin")

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def cors_origin_list(self):
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int = 8000
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
