"""
Steam App List source.

Fetches the complete list of app IDs from the ISteamApps Web API. Used
when the PICS change feed cannot serve an incremental diff.
"""

from typing import Any

import httpx
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from steam_depot_index.config import RetryConfig, SteamConnectionConfig, get_settings
from steam_depot_index.errors import CatalogListingError
from steam_depot_index.logger import get_logger


class AppListSource:
    """
    Downloads every known app ID in one request.

    Example:
        >>> async with AppListSource() as source:
        ...     app_ids = await source.get_all_app_ids()
    """

    APP_LIST_PATH = "/ISteamApps/GetAppList/v2/"

    def __init__(
        self,
        *,
        config: SteamConnectionConfig | None = None,
        retry_config: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the source.

        Args:
            config: Steam endpoint configuration (uses settings if None)
            retry_config: Custom retry configuration (uses settings if None)
            client: Pre-built HTTP client; created lazily if None
        """
        settings = get_settings()
        self._config = config or settings.steam
        self._retry_config = retry_config or settings.retry
        self._client = client
        self._logger = get_logger(__name__, component="app_list")

    @property
    def url(self) -> str:
        """Full URL of the app list endpoint."""
        return self._config.web_api_url.rstrip("/") + self.APP_LIST_PATH

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.app_list_timeout_seconds),
                follow_redirects=True,
                headers={
                    "User-Agent": "SteamDepotIndex/0.1",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AppListSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def _log_retry_attempt(self, retry_state: Any) -> None:
        """Log retry attempts for observability."""
        self._logger.warning(
            "Retrying app list request",
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
            exception=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    async def _download(self) -> dict[str, Any]:
        @retry(
            retry=retry_if_exception_type(httpx.HTTPError),
            stop=stop_after_attempt(self._retry_config.max_attempts),
            wait=wait_exponential(
                multiplier=self._retry_config.base_delay_seconds,
                max=self._retry_config.max_delay_seconds,
                exp_base=self._retry_config.exponential_base,
            ),
            before_sleep=self._log_retry_attempt,
            reraise=False,
        )
        async def _request() -> dict[str, Any]:
            response = await self.client.get(self.url)
            response.raise_for_status()
            data: dict[str, Any] = response.json()
            return data

        try:
            return await _request()
        except RetryError as e:
            raise CatalogListingError(
                f"App list request failed after {self._retry_config.max_attempts} attempts",
                original_error=e,
            ) from e
        except ValueError as e:
            raise CatalogListingError("App list response is not valid JSON", original_error=e) from e

    async def get_all_app_ids(self) -> list[int]:
        """
        Get every app ID Steam currently lists.

        Returns:
            Sorted, deduplicated app IDs

        Raises:
            CatalogListingError: If the list cannot be downloaded or parsed
        """
        self._logger.info("Fetching complete Steam app list", url=self.url)
        data = await self._download()

        try:
            entries = data["applist"]["apps"]
        except (KeyError, TypeError) as e:
            raise CatalogListingError("App list response has no applist.apps", original_error=e) from e
        if not isinstance(entries, list):
            raise CatalogListingError(
                f"App list applist.apps is {type(entries).__name__}, not a list"
            )

        app_ids: set[int] = set()
        skipped = 0
        for entry in entries:
            try:
                app_id = int(entry["appid"])
            except (KeyError, TypeError, ValueError):
                skipped += 1
                continue
            if 0 <= app_id <= 0xFFFFFFFF:
                app_ids.add(app_id)
            else:
                skipped += 1

        self._logger.info("App list fetch complete", total_apps=len(app_ids), skipped=skipped)
        return sorted(app_ids)
