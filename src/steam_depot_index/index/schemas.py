"""
Schemas for the depot index.

The persisted file uses camelCase field names; the Python side uses
snake_case and converts through pydantic aliases.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from steam_depot_index.pics.messages import AppId, ChangeNumber

PLACEHOLDER_NAME_FORMAT = "App {app_id}"

# appinfo common.type value of downloadable content
DLC_APP_TYPE = "dlc"


def placeholder_name(app_id: int) -> str:
    """Name used for apps whose real name is unknown."""
    return PLACEHOLDER_NAME_FORMAT.format(app_id=app_id)


def is_placeholder_name(app_id: int, name: str) -> bool:
    """Whether `name` is the synthesized placeholder for `app_id`."""
    return name == placeholder_name(app_id)


class IndexModel(BaseModel):
    """Base for persisted models: camelCase on disk, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IndexMetadata(IndexModel):
    """Run metadata stored at the top of the index file."""

    last_updated: datetime = Field(..., description="UTC time the file was written")
    total_mappings: int = Field(default=0, ge=0, description="Sum of app IDs over all depots")
    version: str = Field(default="1.0", description="Schema version tag")
    next_update_due: datetime = Field(..., description="UTC time the next run is due")
    last_change_number: ChangeNumber = Field(
        default=0, description="PICS change number the index is current to"
    )


class DepotMappingEntry(IndexModel):
    """
    One depot in the index file.

    `app_ids` and `app_names` are parallel arrays; the owner, when
    known, is always first.
    """

    owner_id: AppId | None = Field(default=None, description="Owning app ID")
    app_ids: list[AppId] = Field(default_factory=list)
    app_names: list[str] = Field(default_factory=list)
    source: str = Field(default="SteamKit2-PICS", description="Provenance tag")
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PersistedIndex(IndexModel):
    """The whole index file."""

    metadata: IndexMetadata | None = None
    depot_mappings: dict[str, DepotMappingEntry] = Field(default_factory=dict)


@dataclass
class DepotRecord:
    """A depot and every app known to reference it."""

    depot_id: int
    app_ids: set[int] = field(default_factory=set)
    owner_app_id: int | None = None
    discovered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "SteamKit2-PICS"

    def __post_init__(self) -> None:
        if self.owner_app_id is not None:
            self.app_ids.add(self.owner_app_id)

    def ordered_app_ids(self) -> list[int]:
        """App IDs with the owner first, the rest in ascending order."""
        rest = sorted(self.app_ids)
        if self.owner_app_id is not None and self.owner_app_id in self.app_ids:
            rest.remove(self.owner_app_id)
            return [self.owner_app_id, *rest]
        return rest


@dataclass
class IndexSnapshot:
    """Point-in-time copy of depot/app facts (live run or prior file)."""

    depot_apps: dict[int, set[int]] = field(default_factory=dict)
    app_names: dict[int, str] = field(default_factory=dict)
    depot_owners: dict[int, int] = field(default_factory=dict)
    discovered_at: dict[int, datetime] = field(default_factory=dict)
    last_change_number: int = 0

    @property
    def depot_count(self) -> int:
        """Number of depots."""
        return len(self.depot_apps)

    @property
    def total_mappings(self) -> int:
        """Sum of app IDs over all depots."""
        return sum(len(app_ids) for app_ids in self.depot_apps.values())
