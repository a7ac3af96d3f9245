"""Application settings loaded from environment variables.

Hey future me - every section is its own BaseSettings with its own env prefix
(DATABASE_, SPOTIFY_, SYNC_, LOG_). That way you can build a single section in
tests (SpotifySettings(api_base_url=...)) without dragging the whole app
config along. Settings just aggregates them.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    url: str = "sqlite+aiosqlite:///./petal.db"
    echo: bool = False
    pool_pre_ping: bool = True
    # Pool settings only apply to PostgreSQL (SQLite doesn't pool)
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 3600
    # Create missing tables on startup (dev/tests). Production runs `alembic upgrade head`.
    auto_create_tables: bool = False


class SpotifySettings(BaseSettings):
    """Spotify Web API settings used by the catalog fetcher."""

    model_config = SettingsConfigDict(
        env_prefix="SPOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_base_url: str = "https://api.spotify.com/v1"
    # Spotify caps every library endpoint at 50 items per page
    page_size: int = Field(default=50, ge=1, le=50)
    request_timeout: float = 30.0
    # 429 retries handled by the rate limiter before we give up with NetworkError
    max_rate_limit_retries: int = 3


class SyncSettings(BaseSettings):
    """Catalog sync behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Minimum interval between two attempts for the same (user, resource kind).
    # Only bounds load on Spotify - correctness never depends on it.
    cooldown_seconds: float = Field(default=10.0, ge=0)


class ObservabilitySettings(BaseSettings):
    """Logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: str = "INFO"
    json_format: bool = False


class Settings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "petal"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
