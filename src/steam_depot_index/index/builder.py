"""
Depot index builder.

Reads one app's PICS metadata tree at a time and folds its depots,
their owners and the app's name into the live DepotIndex.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from steam_depot_index.errors import MetadataParseError
from steam_depot_index.index.schemas import DLC_APP_TYPE, placeholder_name
from steam_depot_index.index.state import DepotIndex
from steam_depot_index.logger import get_logger

MAX_ID = 0xFFFFFFFF


def parse_id(value: Any) -> int | None:
    """Parse an unsigned 32-bit ID from a VDF value, or None."""
    if value is None or isinstance(value, (bool, Mapping)):
        return None
    try:
        parsed = int(str(value).strip())
    except ValueError:
        return None
    if 0 <= parsed <= MAX_ID:
        return parsed
    return None


def parse_id_list(value: Any) -> list[int]:
    """Parse a comma separated ID list such as `extended.listofdlc`."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        parts: Iterable[Any] = value.values()
    elif isinstance(value, (list, tuple)):
        parts = value
    else:
        parts = str(value).split(",")
    ids = []
    for part in parts:
        parsed = parse_id(part)
        if parsed is not None:
            ids.append(parsed)
    return ids


@dataclass
class DepotFact:
    """A depot declared by an app, with its resolved owner."""

    depot_id: int
    owner_app_id: int
    explicit_owner: bool


@dataclass
class AppFacts:
    """Everything extracted from one app's metadata tree."""

    app_id: int
    name: str | None
    app_type: str | None
    dlc_app_ids: list[int]
    depots: list[DepotFact]
    rejected_self_references: int = 0

    @property
    def is_dlc(self) -> bool:
        return (self.app_type or "").lower() == DLC_APP_TYPE


class DepotIndexBuilder:
    """
    Turns product info trees into depot -> app facts.

    DLC discovery is one level deep: apps fetched because a parent
    listed them are processed with discovery switched off.

    Example:
        >>> builder = DepotIndexBuilder(DepotIndex())
        >>> builder.mark_known([10])
        >>> builder.process_app(10, {"common": {"name": "Game", "type": "Game"}})
        []
    """

    def __init__(self, index: DepotIndex) -> None:
        self._index = index
        self._known_app_ids: set[int] = set()
        self._processed = 0
        self._failed = 0
        self._logger = get_logger(__name__, component="index_builder")

    @property
    def index(self) -> DepotIndex:
        return self._index

    @property
    def processed_count(self) -> int:
        """Apps successfully folded into the index."""
        return self._processed

    @property
    def failed_count(self) -> int:
        """Apps skipped because their metadata could not be parsed."""
        return self._failed

    def mark_known(self, app_ids: Iterable[int]) -> None:
        """Register app IDs that are already scheduled for fetching."""
        self._known_app_ids.update(app_ids)

    def process_app(
        self,
        app_id: int,
        tree: Mapping[str, Any],
        *,
        discover_dlc: bool = True,
    ) -> list[int]:
        """
        Fold one app into the index.

        Args:
            app_id: App the tree belongs to
            tree: Decoded appinfo key/value tree
            discover_dlc: Return newly seen DLC app IDs for a follow-up fetch

        Returns:
            DLC app IDs not fetched or scheduled yet (empty when discovery is off
            or the app could not be parsed)
        """
        try:
            facts = self.extract(app_id, tree)
        except (MetadataParseError, AttributeError, TypeError, ValueError) as e:
            self._failed += 1
            self._logger.warning("Error processing app", app_id=app_id, error=str(e))
            return []

        self._apply(facts)
        self._processed += 1
        self._known_app_ids.add(app_id)

        if not discover_dlc:
            return []

        new_dlc = [dlc for dlc in dict.fromkeys(facts.dlc_app_ids) if dlc not in self._known_app_ids]
        self._known_app_ids.update(new_dlc)
        return new_dlc

    def extract(self, app_id: int, tree: Mapping[str, Any]) -> AppFacts:
        """
        Extract name, type, DLC list and depots without touching the index.

        Raises:
            MetadataParseError: If the tree is not a key/value mapping
        """
        if not isinstance(tree, Mapping):
            raise MetadataParseError(
                f"Metadata for app {app_id} is {type(tree).__name__}, not a mapping",
                app_id=app_id,
            )
        if isinstance(tree.get("appinfo"), Mapping):
            tree = tree["appinfo"]

        common = self._section(tree, "common")
        extended = self._section(tree, "extended")

        name = common.get("name", tree.get("name"))
        app_type = common.get("type", tree.get("type"))
        dlc_value = extended.get("listofdlc", common.get("listofdlc", tree.get("listofdlc")))

        facts = AppFacts(
            app_id=app_id,
            name=str(name) if name not in (None, "") else None,
            app_type=str(app_type) if app_type is not None else None,
            dlc_app_ids=parse_id_list(dlc_value),
            depots=[],
        )

        depots = tree.get("depots")
        if depots is None:
            return facts
        if not isinstance(depots, Mapping):
            raise MetadataParseError(f"App {app_id} has a malformed depots node", app_id=app_id)

        for key, depot in depots.items():
            depot_id = parse_id(key)
            if depot_id is None:
                continue  # branches, baselanguages, ...

            declared_owner = parse_id(depot.get("depotfromapp")) if isinstance(depot, Mapping) else None
            owner_app_id = declared_owner if declared_owner is not None else app_id

            if depot_id == owner_app_id and not facts.is_dlc:
                facts.rejected_self_references += 1
                continue

            facts.depots.append(
                DepotFact(
                    depot_id=depot_id,
                    owner_app_id=owner_app_id,
                    explicit_owner=declared_owner is not None,
                )
            )

        return facts

    @staticmethod
    def _section(tree: Mapping[str, Any], key: str) -> Mapping[str, Any]:
        section = tree.get(key)
        return section if isinstance(section, Mapping) else {}

    def _apply(self, facts: AppFacts) -> None:
        if facts.name is not None:
            self._index.set_app_name(facts.app_id, facts.name)
        else:
            self._index.add_name_if_absent(facts.app_id, placeholder_name(facts.app_id))

        for fact in facts.depots:
            self._index.record_owner(fact.depot_id, fact.owner_app_id, explicit=fact.explicit_owner)
            if fact.explicit_owner:
                # Owner may never be fetched itself; keep serialization named
                self._index.add_name_if_absent(
                    fact.owner_app_id, placeholder_name(fact.owner_app_id)
                )

        if facts.rejected_self_references:
            self._logger.debug(
                "Skipped self-referencing depots",
                app_id=facts.app_id,
                app_type=facts.app_type,
                count=facts.rejected_self_references,
            )
