"""Shared CLI utility functions.

Provides config loading, logging setup and reconciler construction for
CLI commands.
"""

from __future__ import annotations

__all__ = [
    "configure_logging",
    "load_config_or_exit",
    "open_reconciler",
]

from contextlib import asynccontextmanager
from typing import AsyncIterator

import click

from classroom_auth.config import AppConfig, get_auth_log_path, get_config_path, get_system_log_path
from classroom_auth.exceptions import ConfigurationError
from classroom_auth.identity.session_storage import SessionStorage, create_session_storage
from classroom_auth.identity.supabase import create_supabase_backend
from classroom_auth.reconciler.reconciler import SessionReconciler
from classroom_auth.telemetry.auth_logger import AuthLogger, create_auth_logger
from classroom_auth.telemetry.system_logger import (
    configure_system_logger_file,
    get_system_logger,
    set_console_level,
)


def load_config_or_exit() -> AppConfig:
    """Load configuration (file plus environment overrides), exiting on failure.

    Raises:
        click.ClickException: If config not found or invalid.
    """
    try:
        return AppConfig.from_env_or_file(get_config_path())
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def configure_logging(config: AppConfig) -> AuthLogger | None:
    """Apply logging config and open the auth audit log.

    Returns:
        AuthLogger, or None if the audit log could not be opened (a
        warning goes to the system logger; commands still run).
    """
    set_console_level(config.logging.log_level)
    configure_system_logger_file(get_system_log_path(config))

    auth_log_path = get_auth_log_path(config)
    try:
        return create_auth_logger(auth_log_path)
    except OSError as e:
        get_system_logger().warning(
            {
                "event": "auth_log_unavailable",
                "message": f"Auth audit log could not be opened at {auth_log_path}: {e}",
                "error_type": type(e).__name__,
            }
        )
        return None


@asynccontextmanager
async def open_reconciler(
    config: AppConfig,
    *,
    storage: SessionStorage | None = None,
) -> AsyncIterator[SessionReconciler]:
    """Build the Supabase backend and a started reconciler.

    The session is restored on entry. On exit the reconciler is disposed
    and the HTTP client closed.
    """
    auth_logger = configure_logging(config)
    auth_client, profile_store = create_supabase_backend(
        config.supabase,
        storage=storage or create_session_storage(config.storage),
    )
    reconciler = SessionReconciler(
        auth_client,
        profile_store,
        config.reconciler,
        auth_logger=auth_logger,
    )
    try:
        async with reconciler:
            yield reconciler
    finally:
        await auth_client.aclose()
