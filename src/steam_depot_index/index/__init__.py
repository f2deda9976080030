"""
Depot index.

Live depot/app tables, the metadata tree builder that fills them and
the persistence layer that merges them into the saved index file.
"""

from steam_depot_index.index.builder import DepotIndexBuilder
from steam_depot_index.index.schemas import (
    DepotMappingEntry,
    DepotRecord,
    IndexMetadata,
    IndexSnapshot,
    PersistedIndex,
    placeholder_name,
)
from steam_depot_index.index.state import DepotIndex
from steam_depot_index.index.store import MergedIndex, PersistenceMerger

__all__ = [
    "DepotIndex",
    "DepotIndexBuilder",
    "DepotMappingEntry",
    "DepotRecord",
    "IndexMetadata",
    "IndexSnapshot",
    "MergedIndex",
    "PersistedIndex",
    "PersistenceMerger",
    "placeholder_name",
]
