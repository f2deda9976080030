"""
Catalog enumeration.

Decides which apps need their product info refreshed: change cursor
tracking, PICS change feed enumeration and the full app list fallback.
"""

from steam_depot_index.catalog.app_list import AppListSource
from steam_depot_index.catalog.cursor import ChangeCursorTracker, SyncMode
from steam_depot_index.catalog.enumerator import CatalogEnumerator, EnumerationResult

__all__ = [
    "AppListSource",
    "CatalogEnumerator",
    "ChangeCursorTracker",
    "EnumerationResult",
    "SyncMode",
]
