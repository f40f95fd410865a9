"""CLI utility functions.

Re-exports helpers for convenient importing.
"""

from .helpers import configure_logging, load_config_or_exit, open_reconciler

__all__ = [
    "configure_logging",
    "load_config_or_exit",
    "open_reconciler",
]
