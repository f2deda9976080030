"""
Product info ingestion.

Batch fetching of PICS product info and the orchestrator that runs a
whole collection pass.
"""

from steam_depot_index.ingestion.fetcher import (
    FetchProgress,
    FetchResult,
    ProductBatchFetcher,
    chunked,
)
from steam_depot_index.ingestion.orchestrator import SyncOrchestrator, SyncResult

__all__ = [
    "FetchProgress",
    "FetchResult",
    "ProductBatchFetcher",
    "SyncOrchestrator",
    "SyncResult",
    "chunked",
]
