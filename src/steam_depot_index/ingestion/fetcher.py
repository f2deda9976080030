"""
Product info batch fetcher.

Splits the work-list into fixed-size batches, fetches access tokens and
then product info for each batch, and hands every app's metadata tree
to the DepotIndexBuilder. A failed batch is logged and skipped.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from steam_depot_index.config import FetchConfig, get_settings
from steam_depot_index.index.builder import DepotIndexBuilder
from steam_depot_index.logger import get_logger
from steam_depot_index.pics.client import PicsClient
from steam_depot_index.pics.messages import ProductInfoResponse


@dataclass
class FetchProgress:
    """Tracks progress of one fetch round."""

    round_name: str
    total_batches: int
    completed_batches: int = 0
    failed_batches: int = 0
    apps_received: int = 0
    depot_mappings: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def processed_batches(self) -> int:
        return self.completed_batches + self.failed_batches

    @property
    def percentage(self) -> float:
        """Get completion percentage."""
        if self.total_batches == 0:
            return 100.0
        return (self.processed_batches / self.total_batches) * 100

    @property
    def elapsed_seconds(self) -> float:
        """Get elapsed time in seconds."""
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()


@dataclass
class FetchResult:
    """Result of fetching a work-list plus its DLC round."""

    requested_apps: int
    batches: int = 0
    failed_batches: int = 0
    apps_received: int = 0
    dlc_discovered: int = 0
    dlc_batches: int = 0
    dlc_failed_batches: int = 0

    @property
    def total_failed_batches(self) -> int:
        return self.failed_batches + self.dlc_failed_batches


ProgressCallback = Callable[[FetchProgress], None]


def chunked(app_ids: Sequence[int], size: int) -> list[list[int]]:
    """Split `app_ids` into consecutive batches of at most `size`."""
    return [list(app_ids[i : i + size]) for i in range(0, len(app_ids), size)]


class ProductBatchFetcher:
    """
    Fetches product info in batches and feeds the index builder.

    Batches run one after another in work-list order; within a batch the
    access token request always completes before the product info request.

    Example:
        >>> fetcher = ProductBatchFetcher(client, DepotIndexBuilder(DepotIndex()))
        >>> result = await fetcher.fetch([10, 20, 30])
    """

    def __init__(
        self,
        client: PicsClient,
        builder: DepotIndexBuilder,
        *,
        config: FetchConfig | None = None,
    ) -> None:
        self._client = client
        self._builder = builder
        self._config = config or get_settings().fetch
        self._logger = get_logger(__name__, component="fetcher")

    async def fetch(
        self,
        work_list: Sequence[int],
        *,
        on_progress: ProgressCallback | None = None,
    ) -> FetchResult:
        """
        Fetch and index every app in `work_list`, then one round of DLC.

        DLC apps discovered in the first round are fetched once; DLC they
        list in turn are not followed.
        """
        result = FetchResult(requested_apps=len(work_list))
        self._builder.mark_known(work_list)

        discovered: list[int] = []
        progress = await self._run_round(
            "apps",
            work_list,
            discover_dlc=self._config.scan_dlc,
            discovered=discovered,
            on_progress=on_progress,
        )
        result.batches = progress.total_batches
        result.failed_batches = progress.failed_batches
        result.apps_received = progress.apps_received

        if discovered:
            result.dlc_discovered = len(discovered)
            self._logger.info("Fetching discovered DLC", dlc_apps=len(discovered))
            dlc_progress = await self._run_round(
                "dlc",
                sorted(discovered),
                discover_dlc=False,
                discovered=[],
                on_progress=on_progress,
            )
            result.dlc_batches = dlc_progress.total_batches
            result.dlc_failed_batches = dlc_progress.failed_batches
            result.apps_received += dlc_progress.apps_received

        self._logger.info(
            "Fetch complete",
            depot_mappings=self._builder.index.depot_count,
            apps_received=result.apps_received,
            failed_batches=result.total_failed_batches,
        )
        return result

    async def _run_round(
        self,
        round_name: str,
        app_ids: Sequence[int],
        *,
        discover_dlc: bool,
        discovered: list[int],
        on_progress: ProgressCallback | None,
    ) -> FetchProgress:
        batches = chunked(app_ids, self._config.batch_size)
        progress = FetchProgress(round_name=round_name, total_batches=len(batches))

        self._logger.info(
            "Processing batches",
            round=round_name,
            batches=len(batches),
            apps=len(app_ids),
        )

        async for app_id, tree in self.stream(batches, progress, on_progress=on_progress):
            discovered.extend(self._builder.process_app(app_id, tree, discover_dlc=discover_dlc))

        return progress

    async def stream(
        self,
        batches: list[list[int]],
        progress: FetchProgress,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> AsyncIterator[tuple[int, dict[str, Any]]]:
        """
        Yield (app_id, metadata tree) for every app of every successful batch.

        Apps of a batch are only yielded once all of its parts arrived, so
        an abandoned batch contributes nothing.
        """
        for number, batch in enumerate(batches, start=1):
            try:
                parts = await self._fetch_batch(batch)
            except Exception as e:
                progress.failed_batches += 1
                self._logger.warning(
                    "Failed to process batch",
                    round=progress.round_name,
                    batch=number,
                    apps=len(batch),
                    error=str(e),
                    error_type=type(e).__name__,
                )
            else:
                progress.completed_batches += 1
                for part in parts:
                    for app_id, tree in part.apps.items():
                        progress.apps_received += 1
                        yield app_id, tree

            progress.depot_mappings = self._builder.index.depot_count
            if on_progress:
                on_progress(progress)
            if number % self._config.progress_every == 0:
                self._logger.info(
                    "Progress",
                    round=progress.round_name,
                    batches=f"{number}/{progress.total_batches}",
                    percent=f"{progress.percentage:.1f}%",
                    depot_mappings=progress.depot_mappings,
                )

            if number < len(batches):
                await asyncio.sleep(self._config.batch_delay_seconds)

    async def _fetch_batch(self, batch: list[int]) -> list[ProductInfoResponse]:
        tokens = await self._client.get_access_tokens(batch)
        return await self._client.get_product_info(batch, tokens=tokens.app_tokens)
