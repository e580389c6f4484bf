"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScrapeSettings(BaseSettings):
    """Schedule and retry policy for the news scrape job."""

    model_config = SettingsConfigDict(env_prefix="SCRAPE_")

    # Daily trigger time (server local time of the scheduler)
    schedule_hour: int = Field(default=3, ge=0, le=23)
    schedule_minute: int = Field(default=0, ge=0, le=59)

    # Job-level retry policy
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Number of times a scrape run may be attempted",
    )
    timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds a single attempt may run before it is abandoned",
    )
    backoff_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Fixed wait between attempts",
    )

    # Run provider adapters concurrently instead of one after another
    concurrent: bool = Field(default=False)


class CacheSettings(BaseSettings):
    """Store and TTLs for the read-side caches."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    # "database" shares entries across the API server and the CLI
    store: Literal["database", "memory"] = "database"

    search_ttl_seconds: int = Field(default=60 * 60, ge=1)
    feed_ttl_seconds: int = Field(default=60 * 60, ge=1)
    metadata_ttl_seconds: int = Field(default=24 * 60 * 60, ge=1)

    # Expired entries are swept out every this many writes
    sweep_interval: int = Field(default=100, ge=1)


class RateLimitSettings(BaseSettings):
    """Per-client request budgets for the read API."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    articles_feed_per_minute: int = Field(default=30, ge=1)
    metadata_per_minute: int = Field(default=20, ge=1)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Newsdesk"
    app_version: str = "0.1.0"
    debug: bool = Field(default=False)
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./newsdesk.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # Provider credentials (a missing key disables that provider)
    newsapi_key: Optional[str] = Field(default=None)
    guardian_api_key: Optional[str] = Field(default=None)
    nyt_api_key: Optional[str] = Field(default=None)

    http_timeout_seconds: float = Field(default=30.0, gt=0)

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
    )

    # Pagination
    default_page_size: int = Field(default=15, ge=1, le=100)
    max_page_size: int = Field(default=100, ge=1, le=500)

    # Nested groups
    scrape: ScrapeSettings = Field(default_factory=ScrapeSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
