"""
Change cursor tracking.

Keeps the last fully processed PICS change number and decides where
enumeration starts for a run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from steam_depot_index.errors import DepotIndexError
from steam_depot_index.logger import get_logger
from steam_depot_index.pics.client import PicsClient

MAX_CHANGE_NUMBER = 0xFFFFFFFF


class SyncMode(str, Enum):
    """How a run treats previously collected data."""

    FULL = "full"  # Rebuild from scratch
    INCREMENTAL = "incremental"  # Continue from the saved change number
    AUTO = "auto"  # Incremental when a usable index file exists


@dataclass
class ChangeCursorTracker:
    """
    Owns the last-seen change number for a run.

    The cursor only ever moves forward; advance() ignores lower values.
    """

    last_seen: int = 0
    recent_window: int = 50000
    _logger: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not 0 <= self.last_seen <= MAX_CHANGE_NUMBER:
            raise ValueError(f"Change number out of range: {self.last_seen}")
        self._logger = get_logger(__name__, component="cursor")

    def resolve_mode(self, requested: SyncMode, *, index_exists: bool) -> SyncMode:
        """
        Turn the requested mode into FULL or INCREMENTAL.

        AUTO becomes INCREMENTAL only when an index file exists and
        carries a non-zero change number.
        """
        if requested != SyncMode.AUTO:
            mode = requested
        elif index_exists and self.last_seen > 0:
            mode = SyncMode.INCREMENTAL
        else:
            mode = SyncMode.FULL

        self._logger.info(
            "Resolved run mode",
            requested=requested.value,
            mode=mode.value,
            auto_detected=requested == SyncMode.AUTO,
            last_change_number=self.last_seen,
        )
        return mode

    def decide_starting_point(self, current_change_number: int, *, incremental: bool) -> int:
        """
        Pick the change number enumeration starts from.

        Incremental runs with history resume at the saved cursor; anything
        else looks back over a bounded recent window.
        """
        if incremental and self.last_seen > 0:
            return self.last_seen
        return max(0, current_change_number - self.recent_window)

    def advance(self, change_number: int) -> int:
        """Move the cursor forward to `change_number` if it is ahead."""
        if change_number > self.last_seen:
            self.last_seen = min(change_number, MAX_CHANGE_NUMBER)
        return self.last_seen

    async def fetch_current_change_number(self, client: PicsClient, timeout: float) -> int:
        """
        Read the head of the PICS change feed.

        Returns 0 instead of raising when the number cannot be obtained.
        """
        try:
            changes = await client.get_changes_since(
                0,
                send_app_changes=False,
                send_package_changes=False,
                timeout=timeout,
            )
        except DepotIndexError as e:
            self._logger.warning("Could not read current change number", error=str(e))
            return 0
        return changes.current_change_number
