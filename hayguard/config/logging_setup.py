"""Logging configuration utilities."""

from __future__ import annotations

import logging
from typing import List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    quiet_loggers: Optional[List[str]] = None,
) -> None:
    """
    Configure root logging for the engine process.

    Parameters
    ----------
    level
        Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL). Unknown names
        fall back to INFO.
    format_string
        Custom format string for log records.
    quiet_loggers
        Extra logger names to cap at WARNING.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=format_string or DEFAULT_FORMAT)

    # requests/urllib3 log every webhook connection at DEBUG
    for name in (quiet_loggers or []) + ["urllib3"]:
        logging.getLogger(name).setLevel(logging.WARNING)
