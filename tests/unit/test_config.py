"""Tests for configuration module."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from steam_depot_index.config import (
    CatalogConfig,
    FetchConfig,
    LoggingConfig,
    RetryConfig,
    SteamConnectionConfig,
    StorageConfig,
)


class TestSteamConnectionConfig:
    """Tests for Steam connection configuration."""

    def test_default_values(self) -> None:
        """Test default timeouts."""
        with patch.dict(os.environ, {}, clear=True):
            config = SteamConnectionConfig()

        assert config.connect_timeout_seconds == 30.0
        assert config.login_timeout_seconds == 30.0
        assert config.call_timeout_seconds == 300.0
        assert config.product_info_timeout_seconds == 600.0
        assert config.web_api_url == "https://api.steampowered.com"

    def test_env_override(self) -> None:
        """Test that STEAM_ variables override defaults."""
        with patch.dict(os.environ, {"STEAM_CALL_TIMEOUT_SECONDS": "12.5"}):
            config = SteamConnectionConfig()

        assert config.call_timeout_seconds == 12.5

    def test_connect_timeout_bounds(self) -> None:
        """Test that a zero connect timeout is rejected."""
        with patch.dict(os.environ, {"STEAM_CONNECT_TIMEOUT_SECONDS": "0"}), pytest.raises(ValueError):
            SteamConnectionConfig()


class TestCatalogConfig:
    """Tests for enumeration configuration."""

    def test_default_values(self) -> None:
        """Test default enumeration limits."""
        with patch.dict(os.environ, {}, clear=True):
            config = CatalogConfig()

        assert config.recent_window == 50000
        assert config.max_app_ids == 500000
        assert config.max_consecutive_full_updates == 3
        assert config.stall_step == 500
        assert config.full_listing_on_full_update is True

    def test_full_update_limit_bounds(self) -> None:
        """Test max_consecutive_full_updates validation bounds."""
        with (
            patch.dict(os.environ, {"CATALOG_MAX_CONSECUTIVE_FULL_UPDATES": "0"}),
            pytest.raises(ValueError),
        ):
            CatalogConfig()


class TestFetchConfig:
    """Tests for batch fetch configuration."""

    def test_default_values(self) -> None:
        """Test default batch size and pacing."""
        with patch.dict(os.environ, {}, clear=True):
            config = FetchConfig()

        assert config.batch_size == 200
        assert config.batch_delay_seconds == pytest.approx(0.15)
        assert config.progress_every == 10
        assert config.scan_dlc is True

    def test_batch_size_bounds(self) -> None:
        """Test batch_size validation bounds."""
        with patch.dict(os.environ, {"FETCH_BATCH_SIZE": "0"}), pytest.raises(ValueError):
            FetchConfig()

        with patch.dict(os.environ, {"FETCH_BATCH_SIZE": "5000"}), pytest.raises(ValueError):
            FetchConfig()


class TestStorageConfig:
    """Tests for storage configuration."""

    def test_default_values(self) -> None:
        """Test default output path and metadata tags."""
        with patch.dict(os.environ, {}, clear=True):
            config = StorageConfig()

        assert config.output_path == Path("data/pics_depot_mappings.json")
        assert config.update_interval_days == 2
        assert config.schema_version == "1.0"

    def test_output_path_from_env(self) -> None:
        """Test output path override."""
        with patch.dict(os.environ, {"STORAGE_OUTPUT_PATH": "/tmp/index.json"}):
            config = StorageConfig()

        assert config.output_path == Path("/tmp/index.json")

    def test_blank_source_tag_rejected(self) -> None:
        """Test that a blank provenance tag is rejected."""
        with patch.dict(os.environ, {"STORAGE_SOURCE_TAG": "   "}), pytest.raises(ValueError):
            StorageConfig()


class TestRetryConfig:
    """Tests for retry configuration."""

    def test_default_values(self) -> None:
        """Test default retry values."""
        with patch.dict(os.environ, {}, clear=True):
            config = RetryConfig()

        assert config.max_attempts == 3
        assert config.base_delay_seconds == 1.0
        assert config.max_delay_seconds == 60.0
        assert config.exponential_base == 2.0

    def test_max_attempts_bounds(self) -> None:
        """Test max_attempts validation bounds."""
        with patch.dict(os.environ, {"RETRY_MAX_ATTEMPTS": "0"}), pytest.raises(ValueError):
            RetryConfig()

        with patch.dict(os.environ, {"RETRY_MAX_ATTEMPTS": "11"}), pytest.raises(ValueError):
            RetryConfig()


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_valid_levels(self) -> None:
        """Test valid log levels."""
        for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            with patch.dict(os.environ, {"LOG_LEVEL": level}):
                config = LoggingConfig()
                assert config.level == level

    def test_invalid_format(self) -> None:
        """Test that unknown formats are rejected."""
        with patch.dict(os.environ, {"LOG_FORMAT": "xml"}), pytest.raises(ValueError):
            LoggingConfig()
