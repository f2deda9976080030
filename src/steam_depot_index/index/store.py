"""
Depot index persistence.

Loads the previously saved index, reconciles it with what this run
discovered and writes the combined result back as one JSON file.
"""

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from steam_depot_index.config import StorageConfig, get_settings
from steam_depot_index.errors import PersistenceError
from steam_depot_index.index.builder import parse_id
from steam_depot_index.index.schemas import (
    DepotMappingEntry,
    DepotRecord,
    IndexMetadata,
    IndexSnapshot,
    PersistedIndex,
    is_placeholder_name,
    placeholder_name,
)
from steam_depot_index.logger import get_logger


def _published_mode(path: Path) -> int:
    """Permission bits for the saved file: keep the current ones, else follow the umask."""
    try:
        return path.stat().st_mode & 0o777
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


@dataclass
class MergedIndex:
    """Prior and live facts combined, ready to serialize."""

    records: dict[int, DepotRecord] = field(default_factory=dict)
    app_names: dict[int, str] = field(default_factory=dict)

    @property
    def total_mappings(self) -> int:
        """Sum of app IDs over all depots."""
        return sum(len(record.app_ids) for record in self.records.values())

    def name_of(self, app_id: int) -> str:
        return self.app_names.get(app_id) or placeholder_name(app_id)


class PersistenceMerger:
    """
    Reads, merges and writes the depot index file.

    Example:
        >>> merger = PersistenceMerger(Path("data/pics_depot_mappings.json"))
        >>> prior, cursor = merger.load()
        >>> merged = merger.merge(prior, index.snapshot())
        >>> merger.save(merged, last_change_number=cursor)
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        config: StorageConfig | None = None,
    ) -> None:
        """
        Initialize the merger.

        Args:
            path: Index file location (defaults to the configured output path)
            config: Storage configuration (uses settings if None)
        """
        self._config = config or get_settings().storage
        self._path = Path(path) if path is not None else self._config.output_path
        self._logger = get_logger(__name__, component="persistence")

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        """Whether an index file is present."""
        return self._path.is_file()

    def load(self) -> tuple[IndexSnapshot | None, int]:
        """
        Load the saved index.

        A missing, unreadable or mismatching file is not an error; it
        yields (None, 0), which upstream treats as "no prior data".

        Returns:
            The prior facts (or None) and the saved change number
        """
        if not self.exists():
            self._logger.info("No existing data file found", path=str(self._path))
            return None, 0

        try:
            persisted = PersistedIndex.model_validate_json(self._path.read_bytes())
        except (OSError, PydanticValidationError, ValueError) as e:
            self._logger.warning("Failed to load existing data", path=str(self._path), error=str(e))
            return None, 0

        prior = self.extract(persisted)
        self._logger.info(
            "Loaded existing mappings",
            path=str(self._path),
            depots=prior.depot_count,
            total_mappings=prior.total_mappings,
            last_change_number=prior.last_change_number,
        )
        return prior, prior.last_change_number

    def extract(self, persisted: PersistedIndex) -> IndexSnapshot:
        """
        Convert a persisted file into depot/app tables.

        Depots without an explicit owner take the first listed app as owner.
        Entries whose key is not a depot ID are skipped.
        """
        snapshot = IndexSnapshot(
            last_change_number=persisted.metadata.last_change_number if persisted.metadata else 0,
        )

        for key, entry in persisted.depot_mappings.items():
            depot_id = parse_id(key)
            if depot_id is None:
                self._logger.debug("Skipping malformed depot key", key=key)
                continue

            app_ids = set(entry.app_ids)
            snapshot.depot_apps[depot_id] = app_ids
            snapshot.discovered_at[depot_id] = entry.discovered_at

            owner = entry.owner_id
            if owner is None and entry.app_ids:
                owner = entry.app_ids[0]
            if owner is not None and owner in app_ids:
                snapshot.depot_owners[depot_id] = owner

            for app_id, name in zip(entry.app_ids, entry.app_names):
                snapshot.app_names.setdefault(app_id, name)

        return snapshot

    def merge(
        self,
        prior: IndexSnapshot | None,
        live: IndexSnapshot,
        *,
        now: datetime | None = None,
    ) -> MergedIndex:
        """
        Reconcile prior facts with this run's discoveries.

        - App IDs per depot: union of prior and live
        - Owner: live if discovered this run, else prior, else none
        - Names: prior names are kept unless this run fetched a real name;
          placeholders never replace an existing name
        - discoveredAt: kept for known depots, `now` for new ones
        """
        now = now or datetime.now(timezone.utc)
        prior = prior or IndexSnapshot()
        merged = MergedIndex(app_names=dict(prior.app_names))

        for app_id, name in live.app_names.items():
            if is_placeholder_name(app_id, name) and app_id in merged.app_names:
                continue
            merged.app_names[app_id] = name

        for depot_id in prior.depot_apps.keys() | live.depot_apps.keys():
            app_ids = prior.depot_apps.get(depot_id, set()) | live.depot_apps.get(depot_id, set())
            if not app_ids:
                continue
            owner = live.depot_owners.get(depot_id, prior.depot_owners.get(depot_id))
            if owner is not None and owner not in app_ids:
                owner = None
            merged.records[depot_id] = DepotRecord(
                depot_id=depot_id,
                app_ids=app_ids,
                owner_app_id=owner,
                discovered_at=prior.discovered_at.get(depot_id, now),
                source=self._config.source_tag,
            )

        self._logger.info(
            "Merged depot mappings",
            prior_depots=prior.depot_count,
            live_depots=live.depot_count,
            merged_depots=len(merged.records),
            total_mappings=merged.total_mappings,
        )
        return merged

    def build_document(
        self,
        merged: MergedIndex,
        *,
        last_change_number: int,
        now: datetime | None = None,
    ) -> PersistedIndex:
        """Build the file contents, owner first in every depot's arrays."""
        now = now or datetime.now(timezone.utc)
        mappings: dict[str, DepotMappingEntry] = {}

        for depot_id in sorted(merged.records):
            record = merged.records[depot_id]
            app_ids = record.ordered_app_ids()
            mappings[str(depot_id)] = DepotMappingEntry(
                owner_id=record.owner_app_id,
                app_ids=app_ids,
                app_names=[merged.name_of(app_id) for app_id in app_ids],
                source=record.source,
                discovered_at=record.discovered_at,
            )

        return PersistedIndex(
            metadata=IndexMetadata(
                last_updated=now,
                total_mappings=merged.total_mappings,
                version=self._config.schema_version,
                next_update_due=now + timedelta(days=self._config.update_interval_days),
                last_change_number=last_change_number,
            ),
            depot_mappings=mappings,
        )

    def save(
        self,
        merged: MergedIndex,
        *,
        last_change_number: int,
        now: datetime | None = None,
    ) -> Path:
        """
        Write the index atomically.

        The file is written next to the target and renamed over it, so
        readers never see a partial file.

        Raises:
            PersistenceError: If the file cannot be written
        """
        document = self.build_document(merged, last_change_number=last_change_number, now=now)
        content = document.model_dump_json(by_alias=True, indent=2, exclude_none=True)

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=self._path.parent,
            )
            tmp_path = Path(tmp_name)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.chmod(tmp_path, _published_mode(self._path))
                tmp_path.replace(self._path)
            except BaseException:
                tmp_path.unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Could not write {self._path}: {e}", original_error=e) from e

        self._logger.info(
            "Saved depot index",
            path=str(self._path),
            depots=len(document.depot_mappings),
            total_mappings=document.metadata.total_mappings if document.metadata else 0,
            last_change_number=last_change_number,
        )
        return self._path
