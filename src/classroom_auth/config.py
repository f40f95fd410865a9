"""Application configuration for classroom-auth.

Defines configuration models for the Supabase backend, the session
reconciler, session persistence and logging. User creates config via
`classroom-auth init`. Config is stored at the OS-appropriate location
(platformdirs user config dir).

Example usage:
    # Load from config file (environment overrides applied)
    config = AppConfig.from_env_or_file(get_config_path())

    # Save new configuration
    config.save_to_file(config_path)
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_LOG_DIR",
    "AppConfig",
    "LoggingConfig",
    "ReconcilerConfig",
    "StorageConfig",
    "SupabaseConfig",
    "get_auth_log_path",
    "get_config_path",
    "get_system_log_path",
]

import json
import os
import sys
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError, model_validator

from classroom_auth.constants import (
    APP_NAME,
    CONFIG_FILENAME,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_PROFILE_TABLE,
    DEFAULT_PROVISIONING_BACKOFF_MULTIPLIER,
    DEFAULT_PROVISIONING_POLL_ATTEMPTS,
    DEFAULT_SETTLE_INTERVAL_SECONDS,
    DEFAULT_SETTLE_TIMEOUT_SECONDS,
    ENV_SUPABASE_ANON_KEY,
    ENV_SUPABASE_URL,
    MAX_HTTP_TIMEOUT_SECONDS,
    MAX_PROVISIONING_POLL_ATTEMPTS,
    MIN_HTTP_TIMEOUT_SECONDS,
)
from classroom_auth.exceptions import ConfigurationError
from classroom_auth.utils.file_helpers import (
    ensure_secure_directory,
    get_app_dir,
    load_validated_json,
    require_file_exists,
    set_secure_permissions,
)


# =============================================================================
# Platform-specific defaults
# =============================================================================


def _get_platform_log_dir() -> str:
    """Get platform-appropriate base log directory following OS conventions.

    Platform conventions:
        - macOS: ~/Library/Logs
        - Linux: $XDG_STATE_HOME (~/.local/state)
        - Windows: ~/AppData/Local
    """
    if sys.platform == "darwin":
        return "~/Library/Logs"
    elif sys.platform == "win32":
        return "~/AppData/Local"
    else:
        return os.environ.get("XDG_STATE_HOME", "~/.local/state")


DEFAULT_LOG_DIR = _get_platform_log_dir()


# =============================================================================
# Backend
# =============================================================================


class SupabaseConfig(BaseModel):
    """Supabase project the classroom client is built on.

    Attributes:
        url: Project URL (e.g., "https://abcd.supabase.co").
        anon_key: Public anon API key, sent as the `apikey` header.
        profile_table: Table holding one teacher profile per identity.
        http_timeout_seconds: Per-request timeout for auth and REST calls.
    """

    url: str = Field(min_length=1, pattern=r"^https?://")
    anon_key: str = Field(min_length=1)
    profile_table: str = Field(default=DEFAULT_PROFILE_TABLE, min_length=1)
    http_timeout_seconds: int = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        ge=MIN_HTTP_TIMEOUT_SECONDS,
        le=MAX_HTTP_TIMEOUT_SECONDS,
    )


# =============================================================================
# Reconciler
# =============================================================================


class ReconcilerConfig(BaseModel):
    """Session reconciler behavior.

    Attributes:
        profile_provisioning: Who creates the teacher profile after sign-up.
            "application": the reconciler inserts the row itself.
            "trigger": a server-side trigger inserts it; the reconciler waits
            settle_interval_seconds and then verifies the row exists.
        sign_up_policy: What a successful sign-up leaves behind.
            "sign_in": the new identity becomes the current user (when the
            provider returned a session).
            "require_sign_in": the provider session is dropped and the user
            signs in explicitly.
        settle_interval_seconds: Wait before the first verification read
            ("trigger" mode only).
        settle_timeout_seconds: Upper bound for the whole settle/verify phase.
        provisioning_poll_attempts: Verification reads before giving up.
        provisioning_backoff_multiplier: Delay multiplier between reads.
    """

    profile_provisioning: Literal["application", "trigger"] = "application"
    sign_up_policy: Literal["sign_in", "require_sign_in"] = "sign_in"
    settle_interval_seconds: float = Field(default=DEFAULT_SETTLE_INTERVAL_SECONDS, ge=0)
    settle_timeout_seconds: float = Field(default=DEFAULT_SETTLE_TIMEOUT_SECONDS, gt=0)
    provisioning_poll_attempts: int = Field(
        default=DEFAULT_PROVISIONING_POLL_ATTEMPTS,
        ge=1,
        le=MAX_PROVISIONING_POLL_ATTEMPTS,
    )
    provisioning_backoff_multiplier: float = Field(default=DEFAULT_PROVISIONING_BACKOFF_MULTIPLIER, ge=1.0)

    @model_validator(mode="after")
    def _check_settle_bounds(self) -> "ReconcilerConfig":
        if self.settle_timeout_seconds < self.settle_interval_seconds:
            raise ValueError("settle_timeout_seconds must be >= settle_interval_seconds")
        return self


# =============================================================================
# Session Persistence
# =============================================================================


class StorageConfig(BaseModel):
    """Where the provider session is persisted between runs.

    Attributes:
        backend: "auto" prefers the OS keychain and falls back to an
            encrypted file; "memory" keeps the session for the process only.
    """

    backend: Literal["auto", "keychain", "file", "memory"] = "auto"


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration settings.

    Logs are stored under <log_dir>/classroom-auth/:
        <log_dir>/
        └── classroom-auth/
            ├── system/
            │   └── system.jsonl     # WARNING and above
            └── audit/
                └── auth.jsonl       # sign-up/sign-in/sign-out outcomes

    Attributes:
        log_dir: Base directory for logs (platform-specific default).
        log_level: Console level for the system logger.
    """

    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1)
    log_level: Literal["DEBUG", "INFO"] = "INFO"


# =============================================================================
# Top-level Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Complete classroom-auth configuration."""

    supabase: SupabaseConfig
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to JSON file with owner-only permissions.

        Args:
            config_path: Path where the config JSON file should be saved.
        """
        ensure_secure_directory(config_path.parent)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(), f, indent=2)

        set_secure_permissions(config_path)

    @classmethod
    def load_from_files(cls, config_path: Path) -> "AppConfig":
        """Load configuration from JSON file.

        Args:
            config_path: Path to the config JSON file.

        Returns:
            AppConfig instance with loaded configuration.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            ValueError: If config file is invalid or missing required fields.
        """
        require_file_exists(config_path, file_type="configuration")
        return load_validated_json(
            config_path,
            cls,
            file_type="config",
            recovery_hint="Run 'classroom-auth init' to reconfigure.",
        )

    @classmethod
    def from_env_or_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration, letting environment variables override Supabase settings.

        CLASSROOM_SUPABASE_URL / CLASSROOM_SUPABASE_ANON_KEY replace the file
        values. When both are set, the config file is optional.

        Args:
            config_path: Path to the config JSON file.

        Returns:
            AppConfig instance.

        Raises:
            ConfigurationError: If neither a usable file nor both environment
                variables are available, or the result fails validation.
        """
        env_url = os.environ.get(ENV_SUPABASE_URL)
        env_key = os.environ.get(ENV_SUPABASE_ANON_KEY)

        if config_path.exists():
            try:
                data = cls.load_from_files(config_path).model_dump()
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        elif env_url and env_key:
            data = {}
        else:
            raise ConfigurationError(
                f"Not initialized: no config at {config_path}.\n"
                f"Run 'classroom-auth init' or set {ENV_SUPABASE_URL} and {ENV_SUPABASE_ANON_KEY}."
            )

        supabase = dict(data.get("supabase") or {})
        if env_url:
            supabase["url"] = env_url
        if env_key:
            supabase["anon_key"] = env_key
        data["supabase"] = supabase

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


# =============================================================================
# Paths
# =============================================================================


def get_config_path() -> Path:
    """Path to config.json in the platform config directory."""
    return get_app_dir() / CONFIG_FILENAME


def _log_root(config: AppConfig) -> Path:
    return Path(config.logging.log_dir).expanduser() / APP_NAME


def get_system_log_path(config: AppConfig) -> Path:
    """Path to system.jsonl (operational warnings and errors)."""
    return _log_root(config) / "system" / "system.jsonl"


def get_auth_log_path(config: AppConfig) -> Path:
    """Path to auth.jsonl (authentication audit trail)."""
    return _log_root(config) / "audit" / "auth.jsonl"
