"""
Sync orchestrator that coordinates one collection run.

Resolves the run mode, enumerates changed apps, fetches their product
info into the live index and merges the result into the saved file.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID, uuid4

from steam_depot_index.catalog.app_list import AppListSource
from steam_depot_index.catalog.cursor import ChangeCursorTracker, SyncMode
from steam_depot_index.catalog.enumerator import CatalogEnumerator
from steam_depot_index.config import Settings, get_settings
from steam_depot_index.errors import CatalogListingError
from steam_depot_index.index.builder import DepotIndexBuilder
from steam_depot_index.index.state import DepotIndex
from steam_depot_index.index.store import PersistenceMerger
from steam_depot_index.ingestion.fetcher import ProductBatchFetcher, ProgressCallback
from steam_depot_index.logger import bind_run_context, clear_run_context, get_logger
from steam_depot_index.pics.client import PicsClient


@dataclass
class SyncResult:
    """Result of a complete collection run."""

    run_id: UUID
    mode: SyncMode
    started_at: datetime
    completed_at: datetime
    apps_enumerated: int
    used_full_listing: bool
    batches: int
    failed_batches: int
    dlc_discovered: int
    depot_count: int
    app_name_count: int
    total_mappings: int
    start_change_number: int
    last_change_number: int
    output_path: Path

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        return (self.completed_at - self.started_at).total_seconds()


class SyncOrchestrator:
    """
    Runs the collector end to end.

    Example:
        >>> orchestrator = SyncOrchestrator()
        >>> result = await orchestrator.run(SyncMode.AUTO)
        >>> result.last_change_number
        31004000
    """

    def __init__(
        self,
        *,
        client: PicsClient | None = None,
        merger: PersistenceMerger | None = None,
        app_list: AppListSource | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client or PicsClient(config=self._settings.steam)
        self._merger = merger or PersistenceMerger(config=self._settings.storage)
        self._app_list = app_list or AppListSource(
            config=self._settings.steam,
            retry_config=self._settings.retry,
        )
        self._logger = get_logger(__name__, component="orchestrator")

    async def run(
        self,
        mode: SyncMode = SyncMode.AUTO,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """
        Run one collection pass.

        Raises:
            PicsConnectionError: If Steam cannot be reached (fatal)
            PersistenceError: If the index cannot be written
        """
        run_id = uuid4()
        bind_run_context(run_id=str(run_id))
        try:
            return await self._run(run_id, mode, on_progress)
        finally:
            clear_run_context()

    async def _run(
        self,
        run_id: UUID,
        mode: SyncMode,
        on_progress: ProgressCallback | None,
    ) -> SyncResult:
        started_at = datetime.now(timezone.utc)
        self._logger.info("Starting depot collection", requested_mode=mode.value)

        prior, saved_change_number = self._merger.load()
        tracker = ChangeCursorTracker(
            last_seen=saved_change_number,
            recent_window=self._settings.catalog.recent_window,
        )
        resolved = tracker.resolve_mode(mode, index_exists=prior is not None)
        bind_run_context(mode=resolved.value)

        index = DepotIndex()
        builder = DepotIndexBuilder(index)
        enumerator = CatalogEnumerator(self._client, self._app_list, config=self._settings.catalog)
        fetcher = ProductBatchFetcher(self._client, builder, config=self._settings.fetch)

        try:
            async with self._client:
                current = await tracker.fetch_current_change_number(
                    self._client,
                    self._settings.catalog.current_change_timeout_seconds,
                )

                app_ids: list[int] | None = None
                used_full_listing = False
                reached = tracker.last_seen

                if resolved == SyncMode.FULL and self._settings.catalog.full_listing_on_full_update:
                    try:
                        app_ids = await enumerator.list_full_catalog()
                        used_full_listing = True
                        reached = current
                    except CatalogListingError as e:
                        self._logger.warning(
                            "Full app list unavailable, enumerating recent changes",
                            error=str(e),
                        )

                if app_ids is None:
                    start = tracker.decide_starting_point(
                        current,
                        incremental=resolved == SyncMode.INCREMENTAL,
                    )
                    enumeration = await enumerator.enumerate(start, current)
                    app_ids = enumeration.app_ids
                    used_full_listing = enumeration.used_full_listing
                    reached = enumeration.end_change_number

                self._logger.info("Found app IDs to process", apps=len(app_ids))
                fetch_result = await fetcher.fetch(app_ids, on_progress=on_progress)
        finally:
            await self._app_list.close()

        last_change_number = tracker.advance(reached)
        merged = self._merger.merge(prior, index.snapshot())
        output_path = self._merger.save(merged, last_change_number=last_change_number)

        result = SyncResult(
            run_id=run_id,
            mode=resolved,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            apps_enumerated=len(app_ids),
            used_full_listing=used_full_listing,
            batches=fetch_result.batches + fetch_result.dlc_batches,
            failed_batches=fetch_result.total_failed_batches,
            dlc_discovered=fetch_result.dlc_discovered,
            depot_count=len(merged.records),
            app_name_count=len(merged.app_names),
            total_mappings=merged.total_mappings,
            start_change_number=saved_change_number,
            last_change_number=last_change_number,
            output_path=output_path,
        )

        self._logger.info(
            "Collection complete",
            duration_seconds=round(result.duration_seconds, 2),
            depot_mappings=result.depot_count,
            unique_apps=result.app_name_count,
            failed_batches=result.failed_batches,
            last_change_number=last_change_number,
        )
        return result
