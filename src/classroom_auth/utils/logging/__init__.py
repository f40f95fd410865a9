"""Logging utilities and helpers.

This package provides logging infrastructure for classroom-auth:
- iso_formatter: ISO 8601 timestamp formatting for JSONL logs
- logger_setup: Factory function for creating JSONL file loggers
- logging_helpers: Event serialization and identifier hashing

Import directly from submodules to avoid circular imports:
    from classroom_auth.utils.logging.logger_setup import setup_jsonl_logger
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
