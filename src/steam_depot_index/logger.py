"""
Structured logging for the collector.

Log events go to stderr so stdout carries only the CLI's JSON summary.
Run-scoped fields (run id, mode) are bound through contextvars and show
up on every event emitted while a run is in progress.
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.types import Processor

from steam_depot_index.config import LoggingConfig, get_settings

# stdlib loggers of the steam client library; chatty at INFO
STEAM_LIBRARY_LOGGERS = ("SteamClient", "CMClient", "CMServerList")


def _renderer(config: LoggingConfig) -> "Processor":
    if config.format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def setup_logging(config: LoggingConfig | None = None) -> None:
    """
    Configure structlog and the stdlib loggers used by the steam library.

    Args:
        config: Logging configuration (uses settings if None)
    """
    config = config or get_settings().logging

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if config.include_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors.append(_renderer(config))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(name)s: %(message)s",
        stream=sys.stderr,
        level=getattr(logging, config.level),
    )
    library_level = logging.DEBUG if config.level == "DEBUG" else logging.WARNING
    for name in STEAM_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def bind_run_context(**context: Any) -> None:
    """Attach fields such as run_id to every event until clear_run_context()."""
    structlog.contextvars.bind_contextvars(**context)


def clear_run_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a logger bound to `initial_context`.

    Example:
        >>> logger = get_logger(__name__, component="fetcher")
        >>> logger.info("Batch complete", batch=3, apps=200)
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger
