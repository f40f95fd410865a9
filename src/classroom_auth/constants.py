"""Application-wide constants for classroom-auth.

Constants that define application behavior.
For user-configurable settings per deployment, see config.py.
"""

import os

__all__ = [
    # Application identity
    "APP_NAME",
    "CONFIG_DIR",
    "CONFIG_FILENAME",
    # Environment overrides
    "ENV_SUPABASE_URL",
    "ENV_SUPABASE_ANON_KEY",
    # Backend tables and endpoints
    "DEFAULT_PROFILE_TABLE",
    "AUTH_API_PREFIX",
    "REST_API_PREFIX",
    # HTTP
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "MIN_HTTP_TIMEOUT_SECONDS",
    "MAX_HTTP_TIMEOUT_SECONDS",
    # Reconciliation timing
    "DEFAULT_SETTLE_INTERVAL_SECONDS",
    "DEFAULT_SETTLE_TIMEOUT_SECONDS",
    "DEFAULT_PROVISIONING_POLL_ATTEMPTS",
    "MAX_PROVISIONING_POLL_ATTEMPTS",
    "DEFAULT_PROVISIONING_BACKOFF_MULTIPLIER",
    # Sessions
    "SESSION_REFRESH_MARGIN_SECONDS",
    "DEFAULT_SESSION_EXPIRES_IN_SECONDS",
    # Routes
    "LOGIN_ROUTE",
    "HOME_ROUTE",
]

from platformdirs import user_config_dir

# ============================================================================
# Application Identity
# ============================================================================

APP_NAME: str = "classroom-auth"

# Platform config directory (config.json, encrypted session fallback)
# - macOS: ~/Library/Application Support/classroom-auth/
# - Linux: ~/.config/classroom-auth/
# - Windows: %APPDATA%\classroom-auth\
CONFIG_DIR: str = os.path.realpath(user_config_dir(APP_NAME))

CONFIG_FILENAME: str = "config.json"

# ============================================================================
# Environment Overrides
# ============================================================================

ENV_SUPABASE_URL: str = "CLASSROOM_SUPABASE_URL"
ENV_SUPABASE_ANON_KEY: str = "CLASSROOM_SUPABASE_ANON_KEY"

# ============================================================================
# Backend
# ============================================================================

# One row per teacher identity, keyed by the identity id
DEFAULT_PROFILE_TABLE: str = "teachers"

AUTH_API_PREFIX: str = "/auth/v1"
REST_API_PREFIX: str = "/rest/v1"

DEFAULT_HTTP_TIMEOUT_SECONDS: int = 10
MIN_HTTP_TIMEOUT_SECONDS: int = 1
MAX_HTTP_TIMEOUT_SECONDS: int = 120

# ============================================================================
# Reconciliation Timing
# ============================================================================

# Wait after identity creation before the first profile read when a
# server-side trigger provisions the teacher row.
DEFAULT_SETTLE_INTERVAL_SECONDS: float = 1.0

# Upper bound on the whole settle/verify phase of sign-up
DEFAULT_SETTLE_TIMEOUT_SECONDS: float = 5.0

# A single verification read after settling; more attempts back off exponentially
DEFAULT_PROVISIONING_POLL_ATTEMPTS: int = 1
MAX_PROVISIONING_POLL_ATTEMPTS: int = 10
DEFAULT_PROVISIONING_BACKOFF_MULTIPLIER: float = 2.0

# ============================================================================
# Sessions
# ============================================================================

# Refresh a stored session this many seconds before its access token expires
SESSION_REFRESH_MARGIN_SECONDS: int = 60

# Used when the token response omits expires_in (GoTrue default is 1 hour)
DEFAULT_SESSION_EXPIRES_IN_SECONDS: int = 3600

# ============================================================================
# Routes
# ============================================================================

LOGIN_ROUTE: str = "/login"
HOME_ROUTE: str = "/"
