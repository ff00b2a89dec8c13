"""
Logging configuration for the row-to-graph projector.

This module sets up logging with consistent formatting across the package.
Every record carries a ``run_id`` so lines from one projection run can be
grepped together.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from .constants import DEFAULT_LOG_LEVEL, LOG_FORMAT


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    include_run_id: bool = True,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to env var or INFO.
        format_string: Custom log format string. Defaults to standard format.
        include_run_id: Whether to include the projection run ID in logs.

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logger = logging.getLogger(__name__)
        >>> logger.info("Projection started")
    """
    log_level = level or os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    log_format = format_string or LOG_FORMAT
    if not include_run_id:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RunIDFilter())

    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        handlers=[handler],
        force=True,  # Override any existing configuration
    )

    # The driver logs every routing table refresh at INFO
    logging.getLogger("neo4j").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {log_level}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class RunIDFilter(logging.Filter):
    """
    Logging filter that adds the projection run ID to log records.

    Records logged outside a run (or without ``extra={"run_id": ...}``)
    get ``-``.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = "-"
        return True
