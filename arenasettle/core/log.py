"""Shared logging helpers for arenasettle."""

import logging
import os
from typing import Optional

_DEFAULT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_ENV = "ARENASETTLE_LOG_LEVEL"


def _env_level(default: int) -> int:
    raw = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    return getattr(logging, raw, default)


def get_logger(name: str) -> logging.Logger:
    """
    Module logger under the "arenasettle" hierarchy.

    Handlers are attached once, on the root "arenasettle" logger, by
    setup_logging(). Library use without setup_logging() stays silent
    apart from Python's last-resort handler for warnings and above.
    """
    if not name.startswith("arenasettle"):
        name = f"arenasettle.{name}"
    return logging.getLogger(name)


def setup_logging(
    verbose: bool = False,
    log_file: Optional[str] = None,
    level: Optional[int] = None,
) -> logging.Logger:
    """Setup console (and optional file) logging for the CLI."""
    logger = logging.getLogger("arenasettle")
    logger.handlers = []
    default = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(_env_level(default) if level is None else level)

    formatter = logging.Formatter(_DEFAULT_FORMAT, datefmt=_DEFAULT_DATEFMT)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger
