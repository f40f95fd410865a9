"""Command-line interface for classroom-auth.

Provides commands for initializing configuration, signing teachers up,
in and out, and inspecting configuration.
"""

from .main import cli, main

__all__ = ["cli", "main"]
