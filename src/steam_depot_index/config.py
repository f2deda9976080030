"""
Collector configuration.

Each section reads its own environment prefix (STEAM_, CATALOG_, FETCH_,
STORAGE_, RETRY_, LOG_); values can also come from a .env file.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SteamConnectionConfig(BaseSettings):
    """Steam network (CM + Web API) configuration."""

    model_config = SettingsConfigDict(env_prefix="STEAM_")

    connect_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for establishing the CM connection",
    )
    login_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for the anonymous logon",
    )
    call_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Timeout for single-response PICS calls",
    )
    product_info_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Overall timeout for a multi-part product info exchange",
    )
    callback_poll_seconds: float = Field(
        default=0.1,
        gt=0,
        le=5.0,
        description="How long each pump iteration waits for inbound messages",
    )
    web_api_url: str = Field(
        default="https://api.steampowered.com",
        description="Base URL for Steam Web API",
    )
    app_list_timeout_seconds: float = Field(
        default=120.0,
        ge=5,
        le=600,
        description="HTTP timeout for the full app list download",
    )


class CatalogConfig(BaseSettings):
    """Change feed enumeration configuration."""

    model_config = SettingsConfigDict(env_prefix="CATALOG_")

    recent_window: int = Field(
        default=50000,
        ge=0,
        description="Changes to look back when there is no saved change number",
    )
    max_app_ids: int = Field(
        default=500000,
        ge=1,
        description="Stop enumerating once this many app IDs are collected",
    )
    max_consecutive_full_updates: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Full-update signals tolerated before using the full app list",
    )
    stall_step: int = Field(
        default=500,
        ge=1,
        description="Cursor step applied when the change feed makes no progress",
    )
    poll_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Delay between change feed polls",
    )
    full_update_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay after the feed signals a full update",
    )
    full_listing_on_full_update: bool = Field(
        default=True,
        description="Use the full app list directly for any run resolved to full mode",
    )
    current_change_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for reading the current change number",
    )


class FetchConfig(BaseSettings):
    """Product info batch fetching configuration."""

    model_config = SettingsConfigDict(env_prefix="FETCH_")

    batch_size: int = Field(
        default=200,
        ge=1,
        le=1000,
        description="App IDs per product info batch",
    )
    batch_delay_seconds: float = Field(
        default=0.15,
        ge=0,
        description="Delay between consecutive batches",
    )
    progress_every: int = Field(
        default=10,
        ge=1,
        description="Log progress every N batches",
    )
    scan_dlc: bool = Field(
        default=True,
        description="Fetch DLC app IDs listed by processed apps (one level)",
    )


class StorageConfig(BaseSettings):
    """Persisted index configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    output_path: Path = Field(
        default=Path("data/pics_depot_mappings.json"),
        description="Location of the persisted depot index",
    )
    update_interval_days: int = Field(
        default=2,
        ge=1,
        le=365,
        description="Days until the next update is due",
    )
    schema_version: str = Field(
        default="1.0",
        description="Version tag written to the index metadata",
    )
    source_tag: str = Field(
        default="SteamKit2-PICS",
        description="Provenance tag written on every depot mapping",
    )

    @field_validator("schema_version", "source_tag")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty tags."""
        if not v.strip():
            raise ValueError("Tag must not be blank")
        return v.strip()


class RetryConfig(BaseSettings):
    """Backoff for the HTTP app list download (PICS calls are not retried)."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts before the app list download is abandoned",
    )
    base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        le=30.0,
        description="First backoff delay; later delays grow exponentially",
    )
    max_delay_seconds: float = Field(
        default=60.0,
        ge=0.0,
        le=300.0,
        description="Upper bound on a single backoff delay",
    )
    exponential_base: float = Field(
        default=2.0,
        ge=1.5,
        le=4.0,
        description="Growth factor between consecutive backoff delays",
    )


class LoggingConfig(BaseSettings):
    """Log level and rendering; events always go to stderr."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum level for collector events",
    )
    format: Literal["json", "console"] = Field(
        default="console",
        description="json for scheduled runs, console for a terminal",
    )
    include_timestamp: bool = Field(
        default=True,
        description="Prefix events with a UTC ISO timestamp",
    )


class Settings(BaseSettings):
    """All configuration sections of one collector process."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    steam: SteamConnectionConfig = Field(default_factory=SteamConnectionConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
