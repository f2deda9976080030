"""
Command-line interface for the Steam depot index collector.

Runs one collection pass and prints a JSON summary.
"""

import asyncio
import json
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from steam_depot_index.catalog.cursor import SyncMode
from steam_depot_index.config import get_settings
from steam_depot_index.ingestion.fetcher import FetchProgress
from steam_depot_index.logger import get_logger, setup_logging


class CLIOutput(BaseModel):
    """Structured output for CLI commands."""

    success: bool
    command: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] | None = None
    error: str | None = None


class UsageError(Exception):
    """Raised for invalid command-line arguments."""

    pass


def print_json(output: CLIOutput) -> None:
    """Print output as formatted JSON."""
    print(json.dumps(output.model_dump(), indent=2, default=str))


def print_usage() -> None:
    """Print CLI usage information."""
    usage = """
Steam PICS Depot Mapping Collector
==================================

Usage: steam-depot-index [--incremental | --full] [--output <path>]

Options:
  --incremental        Continue from the saved change number
  --full               Rebuild from the full app list
  --output <path>      Index file location (default: $STORAGE_OUTPUT_PATH
                       or data/pics_depot_mappings.json)
  -h, --help           Show this message

Without --incremental or --full the mode is detected from the index file.
"""
    print(usage)


def parse_args(argv: list[str]) -> tuple[SyncMode, Path | None]:
    """
    Parse command-line arguments.

    Raises:
        UsageError: For unknown options or conflicting modes
    """
    incremental_only = False
    full_update = False
    output: Path | None = None

    args = iter(argv)
    for arg in args:
        if arg == "--incremental":
            incremental_only = True
        elif arg == "--full":
            full_update = True
        elif arg == "--output":
            value = next(args, None)
            if value is None:
                raise UsageError("--output requires a path")
            output = Path(value)
        else:
            raise UsageError(f"Unknown argument: {arg}")

    if incremental_only and full_update:
        raise UsageError("Cannot specify both --incremental and --full")

    if incremental_only:
        return SyncMode.INCREMENTAL, output
    if full_update:
        return SyncMode.FULL, output
    return SyncMode.AUTO, output


def on_progress(progress: FetchProgress) -> None:
    """Draw a progress bar on stderr."""
    bar_length = 30
    filled = int(bar_length * progress.percentage / 100)
    bar = "█" * filled + "░" * (bar_length - filled)
    print(
        f"\r  [{bar}] {progress.percentage:.1f}% "
        f"| {progress.round_name} {progress.processed_batches}/{progress.total_batches} "
        f"| depots={progress.depot_mappings}     ",
        end="",
        file=sys.stderr,
        flush=True,
    )


async def cmd_sync(mode: SyncMode, output: Path | None) -> None:
    """Run one collection pass."""
    from steam_depot_index.index.store import PersistenceMerger
    from steam_depot_index.ingestion.orchestrator import SyncOrchestrator

    settings = get_settings()
    merger = PersistenceMerger(output, config=settings.storage)
    orchestrator = SyncOrchestrator(merger=merger, settings=settings)

    show_progress = sys.stderr.isatty()
    result = await orchestrator.run(mode, on_progress=on_progress if show_progress else None)
    if show_progress:
        print(file=sys.stderr)

    output_data = CLIOutput(
        success=True,
        command="sync",
        data={
            "run_id": str(result.run_id),
            "mode": result.mode.value,
            "duration_seconds": round(result.duration_seconds, 2),
            "apps_enumerated": result.apps_enumerated,
            "used_full_listing": result.used_full_listing,
            "batches": result.batches,
            "failed_batches": result.failed_batches,
            "dlc_discovered": result.dlc_discovered,
            "depot_mappings": result.depot_count,
            "unique_apps": result.app_name_count,
            "total_mappings": result.total_mappings,
            "start_change_number": result.start_change_number,
            "last_change_number": result.last_change_number,
            "output_path": str(result.output_path),
        },
    )
    print_json(output_data)


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    argv = sys.argv[1:] if argv is None else argv

    if any(arg in ("help", "--help", "-h") for arg in argv):
        print_usage()
        return

    try:
        mode, output = parse_args(argv)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        print_usage()
        sys.exit(1)

    setup_logging()
    logger = get_logger(__name__, component="cli")

    try:
        asyncio.run(cmd_sync(mode, output))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        logger.error("Collection failed", error=str(e), error_type=type(e).__name__)
        traceback.print_exc(file=sys.stderr)
        print_json(CLIOutput(success=False, command="sync", error=str(e)))
        sys.exit(1)


if __name__ == "__main__":
    main()
