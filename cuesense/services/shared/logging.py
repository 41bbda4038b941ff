"""Logging setup for CueSense.

Every module logs to a child of the "cuesense" logger, so one call here
controls the whole engine.
"""
from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from cuesense.services.shared.config import Config

_ROOT = "cuesense"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_bytes: int = 20 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure the cuesense root logger.

    Args:
        level: Log level string ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL").
        log_file: Optional path to a rotating file log.
        max_bytes: Max size before rotation (default 20 MB).
        backup_count: Number of backup files to keep.

    Raises:
        ValueError: If level is not a valid log level string.
    """
    upper = level.upper()
    if upper not in _VALID_LEVELS:
        raise ValueError(f"Invalid log level: {level!r}. Must be one of {_VALID_LEVELS}")

    numeric = getattr(logging, upper)
    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = logging.getLogger(_ROOT)
    root.setLevel(numeric)
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()

    # stderr, so the CLI's JSON on stdout stays clean
    console = logging.StreamHandler()
    console.setLevel(numeric)
    console.setFormatter(fmt)
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric)
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    root.propagate = False


def setup_logging_from_config(config: Config) -> None:
    """Apply the ``logging`` section: level, file, max_bytes, backup_count."""
    setup_logging(
        level=str(config.get("logging.level", "INFO")),
        log_file=config.get("logging.file"),
        max_bytes=int(config.get("logging.max_bytes", 20 * 1024 * 1024)),
        backup_count=int(config.get("logging.backup_count", 5)),
    )
