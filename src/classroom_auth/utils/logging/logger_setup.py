"""Logger setup for JSONL file loggers.

Creates loggers that write one JSON object per line with ISO 8601
timestamps, used for the auth audit trail.
"""

from __future__ import annotations

__all__ = [
    "setup_jsonl_logger",
]

import logging
from pathlib import Path

from classroom_auth.utils.file_helpers import ensure_secure_directory, set_secure_permissions
from classroom_auth.utils.logging.iso_formatter import ISO8601Formatter


def setup_jsonl_logger(
    logger_name: str,
    log_file: Path,
    log_level: int = logging.INFO,
) -> logging.Logger:
    """Set up a logger that writes JSONL with ISO 8601 timestamps.

    Creates the log directory (owner-only: 700) if it doesn't exist.

    Args:
        logger_name: Name for the logger (e.g., "classroom-auth.audit.auth")
        log_file: Path to the log file
        log_level: Logging level (default: INFO)

    Returns:
        logging.Logger: Configured logger instance

    Raises:
        PermissionError: If unable to create log directory due to permissions
        OSError: If directory creation fails for other reasons
    """
    ensure_secure_directory(log_file.parent)

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.propagate = False

    # Close and remove any existing handlers to avoid duplicates and resource leaks
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(ISO8601Formatter())
    logger.addHandler(file_handler)

    # Audit entries reference identities; keep the file owner-only
    set_secure_permissions(log_file)

    return logger
