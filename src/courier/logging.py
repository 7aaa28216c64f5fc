"""Logging configuration for Courier.

Standard-library logging under a single ``courier`` root logger. Output goes
to the configured log file, or to stderr when no file is set.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from courier.config import LoggingConfig

logger = logging.getLogger("courier")

_initialized = False

_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_FORMAT = "[%(asctime)s] %(levelname)s [%(name)s] %(message)s"


def resolve_level(name: str | None) -> int:
    if not name:
        return logging.INFO
    return _LEVEL_MAP.get(name.upper(), logging.INFO)


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Initialize logging once; later calls are no-ops.

    Args:
        config: Optional LoggingConfig with level and file settings.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_level = resolve_level(config.level if config else None)
    logger.setLevel(log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    log_path = config.file if config and config.file else None
    if log_path:
        log_path = os.path.expanduser(log_path)
        try:
            handler: logging.Handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        except OSError as exc:
            print(f"[courier] Failed to open log file: {exc}", file=sys.stderr)
            handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the ``courier`` logger, or a named child of it."""
    if name:
        return logger.getChild(name)
    return logger
