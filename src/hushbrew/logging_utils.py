"""Logging utilities for CLI and run modules."""

from __future__ import annotations

import logging
from pathlib import Path


DEFAULT_LOG_FORMAT = "%(asctime)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 1024 * 1024
ROTATED_SUFFIX = ".old"


def rotated_log_path(log_file: Path) -> Path:
    """Return the single backup location used when the log is rotated."""

    return log_file.with_name(log_file.name + ROTATED_SUFFIX)


def rotate_log_if_needed(log_file: Path, max_bytes: int = DEFAULT_MAX_BYTES) -> bool:
    """Move an oversized log to its `.old` sibling, replacing any prior backup."""

    try:
        size = log_file.stat().st_size
    except FileNotFoundError:
        return False
    if size <= max_bytes:
        return False
    log_file.replace(rotated_log_path(log_file))
    return True


def build_file_handler(log_file: Path) -> logging.FileHandler:
    """Create the append-only file handler; rotation happens once at startup."""

    return logging.FileHandler(log_file, mode="a", encoding="utf-8")


def configure_logging(
    log_file: Path,
    level: int = logging.INFO,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> logging.Logger:
    """Configure process-wide console and file logging."""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    rotate_log_if_needed(log_file, max_bytes=max_bytes)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    formatter = logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)

    file_handler = build_file_handler(log_file)
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    root_logger.addHandler(stream_handler)
    root_logger.addHandler(file_handler)

    logger = logging.getLogger("hushbrew")
    logger.setLevel(level)
    return logger
