"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Ledger and billing settings, read from the environment or ``.env``.

    Supabase credentials are required; everything else has a default that
    suits local development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="shop-ledger-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode and the OpenAPI docs")
    log_level: str | None = Field(default=None, description="Root log level; DEBUG when debug is on, else INFO")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of shop dashboard origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    database_timeout_seconds: float = Field(default=10.0, gt=0, description="PostgREST request timeout")
    health_check_table: str = Field(default="shops", description="Table probed by the readiness check")

    # Billing
    trial_days: int = Field(default=3, ge=1, description="Length of a new shop's free trial in days")
    churn_window_days: int = Field(default=30, ge=1, description="Trailing window used for churn and growth")

    # Stats cache
    dashboard_stats_ttl_seconds: int = Field(default=300, ge=1, description="TTL for per-shop dashboard stats")
    analytics_ttl_seconds: int = Field(default=300, ge=1, description="TTL for the platform analytics snapshot")
    stats_cache_max_size: int = Field(default=1000, ge=1, description="Maximum cached stats entries")
    stats_stale_retention_seconds: int = Field(
        default=3600,
        ge=0,
        description="How long expired stats are kept to answer while the database is unreachable",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str | None) -> str | None:
        return value.upper() if value else None

    @model_validator(mode="after")
    def set_log_level_default(self) -> "Settings":
        """Pick DEBUG or INFO when LOG_LEVEL is not set explicitly."""
        if self.log_level is None:
            self.log_level = "DEBUG" if self.debug else "INFO"
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Call ``get_settings.cache_clear()`` to reload after changing the
    environment.
    """
    return Settings()
