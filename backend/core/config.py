"""
Configuration management for the review ingestion service.

All values can be overridden through environment variables (or a local
``.env`` file). Upstream credentials must never be committed.
"""

from typing import Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Cache TTL bounds in seconds
CACHE_TTL_MIN = 120
CACHE_TTL_MAX = 300


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    Field names map case-insensitively onto environment variables, e.g.
    ``HOSTAWAY_API_KEY`` populates ``hostaway_api_key``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Database Configuration
    database_url: str = "sqlite:///./reviews.db"

    # Hostaway upstream API
    hostaway_account_id: Optional[str] = None
    hostaway_api_key: Optional[str] = None
    hostaway_base_url: str = "https://api.hostaway.com/v1"
    hostaway_timeout: float = Field(default=30.0, gt=0)  # seconds
    # Whole attempt, token exchange and every page included
    hostaway_attempt_timeout: float = Field(default=60.0, gt=0)  # seconds
    hostaway_retries: int = Field(default=3, ge=0, le=10)
    hostaway_backoff_base: float = Field(default=1.0, ge=0)  # seconds
    hostaway_mock_mode: bool = False
    hostaway_mock_data_path: Optional[str] = None
    hostaway_page_limit: int = Field(default=100, ge=1, le=100)

    # Google Places and Business Profile APIs
    google_places_api_key: Optional[str] = None
    google_places_base_url: str = "https://maps.googleapis.com/maps/api/place"
    google_business_base_url: str = "https://mybusiness.googleapis.com/v4"
    google_business_access_token: Optional[str] = None
    google_timeout: float = Field(default=10.0, gt=0)  # seconds
    google_request_interval: float = Field(default=1.0, ge=0)  # seconds between calls

    # Cache Configuration
    cache_default_ttl: int = CACHE_TTL_MAX
    cache_prefix: str = "reviews"
    cache_refresh_threshold: float = Field(default=0.8, gt=0, le=1)
    cache_backend: str = "memory"
    cache_refresh_workers: int = Field(default=2, ge=1)
    cache_refresh_queue_size: int = Field(default=100, ge=1)

    # Redis Configuration (only used by the redis cache backend)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    # Review workflow limits
    review_max_bulk_size: int = Field(default=100, ge=1)
    review_response_max_length: int = Field(default=5000, ge=1)
    review_default_page_size: int = Field(default=20, ge=1, le=100)

    @field_validator("cache_default_ttl", mode="before")
    @classmethod
    def clamp_cache_ttl(cls, v):
        """Keep the cache TTL inside the supported window"""
        return clamp_ttl(int(v))

    @field_validator("cache_backend")
    @classmethod
    def validate_cache_backend(cls, v: str) -> str:
        v = v.lower()
        if v not in ("memory", "redis"):
            raise ValueError("cache_backend must be 'memory' or 'redis'")
        return v

    @field_validator("hostaway_base_url", "google_places_base_url", "google_business_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def hostaway_configured(self) -> bool:
        return bool(self.hostaway_account_id and self.hostaway_api_key)


def clamp_ttl(ttl: int) -> int:
    """Clamp a TTL to [CACHE_TTL_MIN, CACHE_TTL_MAX]"""
    return max(CACHE_TTL_MIN, min(CACHE_TTL_MAX, ttl))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
