"""
Catalog enumeration over the PICS change feed.

Turns "changes since N" into a sorted, deduplicated work-list of app IDs,
falling back to the full Web API app list when the feed keeps refusing
to serve an incremental diff.
"""

import asyncio
from dataclasses import dataclass

from steam_depot_index.catalog.app_list import AppListSource
from steam_depot_index.config import CatalogConfig, get_settings
from steam_depot_index.errors import CatalogListingError, DepotIndexError
from steam_depot_index.logger import get_logger
from steam_depot_index.pics.client import PicsClient


@dataclass
class EnumerationResult:
    """Outcome of one enumeration pass."""

    app_ids: list[int]
    start_change_number: int
    end_change_number: int
    target_change_number: int
    rounds: int = 0
    used_full_listing: bool = False
    hit_cap: bool = False

    @property
    def caught_up(self) -> bool:
        """Whether the cursor reached the captured head of the feed."""
        return self.end_change_number >= self.target_change_number


class CatalogEnumerator:
    """
    Builds the list of apps that need a product info fetch.

    Example:
        >>> enumerator = CatalogEnumerator(client, AppListSource())
        >>> result = await enumerator.enumerate(31_000_000, 31_004_000)
        >>> result.app_ids[:3]
        [10, 20, 570]
    """

    def __init__(
        self,
        client: PicsClient,
        app_list: AppListSource,
        *,
        config: CatalogConfig | None = None,
    ) -> None:
        self._client = client
        self._app_list = app_list
        self._config = config or get_settings().catalog
        self._logger = get_logger(__name__, component="enumerator")

    async def list_full_catalog(self) -> list[int]:
        """Get every app ID from the full app list endpoint."""
        app_ids = await self._app_list.get_all_app_ids()
        self._logger.info("Retrieved full app list", total_apps=len(app_ids))
        return app_ids

    async def enumerate(
        self,
        start_change_number: int,
        current_change_number: int,
    ) -> EnumerationResult:
        """
        Collect app IDs changed between the two change numbers.

        Stops when the cursor reaches `current_change_number`, when the
        app cap is hit, when a round fails, or when the full app list
        replaces incremental enumeration.

        Args:
            start_change_number: First change number to diff from
            current_change_number: Head of the feed captured before enumerating

        Returns:
            EnumerationResult with numerically sorted app IDs
        """
        since = start_change_number
        app_ids: set[int] = set()
        consecutive_full_updates = 0
        rounds = 0
        hit_cap = False

        self._logger.info(
            "Enumerating PICS changes",
            from_change=since,
            to_change=current_change_number,
        )

        while since < current_change_number:
            rounds += 1
            try:
                changes = await self._client.get_changes_since(since, send_app_changes=True)
            except DepotIndexError as e:
                self._logger.warning(
                    "Change feed request failed, stopping enumeration",
                    since=since,
                    round=rounds,
                    error=str(e),
                )
                break

            if changes.signals_full_update:
                consecutive_full_updates += 1
                self._logger.warning(
                    "PICS requesting full update",
                    since=since,
                    consecutive=consecutive_full_updates,
                    limit=self._config.max_consecutive_full_updates,
                )
                if consecutive_full_updates >= self._config.max_consecutive_full_updates:
                    try:
                        full_list = await self.list_full_catalog()
                    except CatalogListingError as e:
                        self._logger.error("Full app list fallback failed", error=str(e))
                        break
                    return EnumerationResult(
                        app_ids=full_list,
                        start_change_number=start_change_number,
                        end_change_number=current_change_number,
                        target_change_number=current_change_number,
                        rounds=rounds,
                        used_full_listing=True,
                    )
                await asyncio.sleep(self._config.full_update_delay_seconds)
                continue

            consecutive_full_updates = 0
            app_ids.update(changes.app_changes)

            last = changes.last_change_number
            if last <= since:
                if not changes.app_changes:
                    # No progress reported; step past the gap instead of spinning
                    since = min(current_change_number, since + self._config.stall_step)
                    await asyncio.sleep(self._config.poll_delay_seconds)
                    continue
                last = min(current_change_number, since + max(1, len(changes.app_changes)))

            since = last

            if len(app_ids) >= self._config.max_app_ids:
                hit_cap = True
                self._logger.warning("App ID cap reached", cap=self._config.max_app_ids)
                break

            await asyncio.sleep(self._config.poll_delay_seconds)

        result = EnumerationResult(
            app_ids=sorted(app_ids),
            start_change_number=start_change_number,
            end_change_number=max(since, start_change_number),
            target_change_number=current_change_number,
            rounds=rounds,
            hit_cap=hit_cap,
        )
        self._logger.info(
            "Enumeration complete",
            apps=len(result.app_ids),
            rounds=rounds,
            reached_change=result.end_change_number,
            caught_up=result.caught_up,
        )
        return result
