"""Shared fixtures: zero-delay settings and a client over the fake transport."""

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
import structlog
from fakes import FakeTransport

from steam_depot_index.config import (
    CatalogConfig,
    FetchConfig,
    RetryConfig,
    Settings,
    SteamConnectionConfig,
    StorageConfig,
)
from steam_depot_index.pics.client import PicsClient


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    """Undo setup_logging so no test keeps another test's captured stderr."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with every delay removed and short timeouts."""
    return Settings(
        steam=SteamConnectionConfig(
            callback_poll_seconds=0.001,
            call_timeout_seconds=1.0,
            product_info_timeout_seconds=1.0,
            web_api_url="https://api.steampowered.test",
        ),
        catalog=CatalogConfig(
            poll_delay_seconds=0,
            full_update_delay_seconds=0,
            current_change_timeout_seconds=1.0,
        ),
        fetch=FetchConfig(batch_delay_seconds=0),
        storage=StorageConfig(output_path=tmp_path / "pics_depot_mappings.json"),
        retry=RetryConfig(max_attempts=2, base_delay_seconds=0, max_delay_seconds=0),
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest_asyncio.fixture
async def pics_client(transport: FakeTransport, settings: Settings) -> AsyncIterator[PicsClient]:
    """A connected PicsClient over the fake transport."""
    client = PicsClient(transport, config=settings.steam)
    await client.connect()
    yield client
    await client.close()
