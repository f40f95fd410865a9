"""Authentication audit logger.

Logs one event per session-changing outcome to audit/auth.jsonl:
- sign_up / sign_in / sign_out (success and failure)
- session_restored at startup
- profile_verification_failed (identity without a teacher profile)
- passive_session_change (provider-pushed events applied to local state)

Identity ids are hashed and emails masked before they reach the log.
"""

from __future__ import annotations

__all__ = [
    "AuthLogger",
    "create_auth_logger",
]

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from classroom_auth.constants import APP_NAME
from classroom_auth.telemetry.models import AuthEvent, AuthEventType
from classroom_auth.utils.logging.logger_setup import setup_jsonl_logger
from classroom_auth.utils.logging.logging_helpers import hash_sensitive_id, mask_email, serialize_event

if TYPE_CHECKING:
    from classroom_auth.identity.models import Identity


class AuthLogger:
    """Audit logger for authentication events.

    Usage:
        auth_logger = create_auth_logger(get_auth_log_path(config))
        auth_logger.log_sign_in(identity=identity, phase="authenticated")
    """

    def __init__(self, logger: logging.Logger) -> None:
        """Initialize auth logger.

        Args:
            logger: Configured JSONL logger.
        """
        self._logger = logger

    def _log(
        self,
        event_type: AuthEventType,
        status: Literal["Success", "Failure"],
        *,
        identity: "Identity | None" = None,
        email: str | None = None,
        phase: str | None = None,
        provider_event: str | None = None,
        error: BaseException | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if email is None and identity is not None:
            email = identity.email
        event = AuthEvent(
            event_type=event_type,
            status=status,
            message=message,
            identity_id=hash_sensitive_id(identity.id) if identity is not None else None,
            email=mask_email(email) if email else None,
            phase=phase,
            provider_event=provider_event,
            error_type=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
            details=details,
        )
        level = logging.INFO if status == "Success" else logging.WARNING
        self._logger.log(level, serialize_event(event))

    def log_sign_up(
        self,
        *,
        email: str,
        identity: "Identity | None" = None,
        phase: str | None = None,
        error: BaseException | None = None,
        provisioning: str | None = None,
    ) -> None:
        """Log a sign-up outcome. Failure when error is given."""
        self._log(
            "sign_up",
            "Failure" if error is not None else "Success",
            identity=identity,
            email=email,
            phase=phase,
            error=error,
            details={"profile_provisioning": provisioning} if provisioning else None,
        )

    def log_sign_in(
        self,
        *,
        email: str,
        identity: "Identity | None" = None,
        phase: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Log a sign-in outcome. Failure when error is given."""
        self._log(
            "sign_in",
            "Failure" if error is not None else "Success",
            identity=identity,
            email=email,
            phase=phase,
            error=error,
        )

    def log_sign_out(
        self,
        *,
        identity: "Identity | None" = None,
        phase: str | None = None,
        error: BaseException | None = None,
        reason: str = "user",
    ) -> None:
        """Log a sign-out outcome.

        Args:
            identity: Identity that was signed out (if known).
            phase: Session phase after the attempt.
            error: Provider error, if the sign-out failed.
            reason: "user" for explicit sign-out, otherwise the consistency
                check that forced it (e.g. "profile_missing").
        """
        self._log(
            "sign_out",
            "Failure" if error is not None else "Success",
            identity=identity,
            phase=phase,
            error=error,
            details={"reason": reason},
        )

    def log_session_restored(
        self,
        *,
        identity: "Identity | None",
        phase: str,
        error: BaseException | None = None,
    ) -> None:
        """Log the startup restore outcome.

        Restore never fails from the caller's point of view; a swallowed
        provider or verification error is recorded as Failure here.
        """
        self._log(
            "session_restored",
            "Failure" if error is not None else "Success",
            identity=identity,
            phase=phase,
            error=error,
            message="No stored session" if identity is None and error is None else None,
        )

    def log_profile_verification_failed(
        self,
        *,
        identity: "Identity",
        operation: str,
        error: BaseException | None = None,
    ) -> None:
        """Log an identity whose teacher profile could not be verified."""
        self._log(
            "profile_verification_failed",
            "Failure",
            identity=identity,
            error=error,
            details={"operation": operation},
        )

    def log_passive_change(
        self,
        *,
        provider_event: str,
        identity: "Identity | None",
        phase: str,
    ) -> None:
        """Log a provider-pushed session change applied to local state."""
        self._log(
            "passive_session_change",
            "Success",
            identity=identity,
            phase=phase,
            provider_event=provider_event,
        )


def create_auth_logger(log_path: Path) -> AuthLogger:
    """Create an auth logger writing to log_path.

    Args:
        log_path: Path to auth.jsonl (from get_auth_log_path()).

    Returns:
        AuthLogger: Configured logger for authentication events.
    """
    logger = setup_jsonl_logger(f"{APP_NAME}.audit.auth", log_path, log_level=logging.INFO)
    return AuthLogger(logger)
