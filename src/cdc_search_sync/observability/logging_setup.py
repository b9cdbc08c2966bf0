"""structlog setup for the sync service."""

from __future__ import annotations

import logging
from typing import Any

import structlog

from cdc_search_sync.config.models import LoggingConfig


def configure_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog rendering and level filtering for the process."""
    cfg = config or LoggingConfig()
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if cfg.json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(cfg.level)
        ),
    )
