"""Custom exceptions for classroom-auth.

This module contains all custom exceptions used throughout the package.
Exceptions are organized into three categories:

Operation Errors (surfaced to the UI for direct display):
    - IdentityCreationError: Provider refused to create the identity
    - InvalidCredentialsError: Provider refused the email/password
    - ProfileProvisioningError: Teacher profile missing or not written after sign-up
    - ProfileMissingError: Identity authenticated but has no teacher profile
    - SignOutError: Provider could not invalidate the session

Boundary Errors (raised by collaborators, handled by the reconciler):
    - TransientProviderError: Network/timeout talking to the identity provider
    - StoreError: Profile store read or write failed
    - SessionStorageError: Persisted session could not be saved or loaded

Setup Errors:
    - ConfigurationError: Config missing or invalid

Usage:
    from classroom_auth.exceptions import InvalidCredentialsError, ProfileMissingError
"""

from __future__ import annotations

__all__ = [
    "ClassroomAuthError",
    "ConfigurationError",
    "IdentityCreationError",
    "InvalidCredentialsError",
    "ProfileMissingError",
    "ProfileProvisioningError",
    "SessionError",
    "SessionStorageError",
    "SignOutError",
    "StoreError",
    "TransientProviderError",
]


class ClassroomAuthError(Exception):
    """Base exception for classroom-auth."""


# =============================================================================
# Operation Errors (surfaced to the caller, no automatic retry)
# =============================================================================


class SessionError(ClassroomAuthError):
    """Base for errors raised by sign_up, sign_in and sign_out.

    The message is meant for direct display to the teacher. The user retries
    by re-submitting the form; nothing is retried automatically.

    Attributes:
        message: Human-readable description.
        provider_message: Raw message from the backend, if any (for logs).
    """

    default_message: str = "Authentication failed"

    def __init__(self, message: str | None = None, *, provider_message: str | None = None) -> None:
        self.message = message or self.default_message
        self.provider_message = provider_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        if self.provider_message is not None:
            return f"{type(self).__name__}({self.message!r}, provider_message={self.provider_message!r})"
        return f"{type(self).__name__}({self.message!r})"


class IdentityCreationError(SessionError):
    """Identity provider returned an error while creating the identity.

    Raised by sign_up before any state change. Typical causes: email already
    registered, password rejected by provider policy, sign-ups disabled.
    """

    default_message = "Could not create account"


class InvalidCredentialsError(SessionError):
    """Identity provider rejected the email/password pair."""

    default_message = "Invalid email or password"


class ProfileProvisioningError(SessionError):
    """Teacher profile was not in place after identity creation.

    Raised when:
    - A server-side trigger should have created the profile but the
      verification read found nothing within the settle window
    - The application wrote the profile itself and the write failed

    The identity is never left signed in locally. The provider-side identity
    is not rolled back.
    """

    default_message = "Account setup did not complete"


class ProfileMissingError(SessionError):
    """Identity authenticated but no teacher profile exists for it.

    A consistency violation: profiles are created at sign-up. The reconciler
    signs the identity out at the provider before raising this, so provider
    and application agree that nobody is logged in.
    """

    default_message = "Account not correctly configured"


class SignOutError(SessionError):
    """Identity provider could not invalidate the session.

    Local state is left unchanged; the caller may retry.
    """

    default_message = "Could not sign out"


# =============================================================================
# Boundary Errors
# =============================================================================


class TransientProviderError(ClassroomAuthError):
    """Network failure or timeout talking to the identity provider.

    restore_session treats this exactly like "no session".
    """


class StoreError(ClassroomAuthError):
    """Profile store read or write failed.

    Attributes:
        status_code: HTTP status from the store, if the request got that far.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionStorageError(ClassroomAuthError):
    """Persisted session could not be saved, loaded or deleted."""


# =============================================================================
# Setup Errors
# =============================================================================


class ConfigurationError(ClassroomAuthError):
    """Configuration is invalid or incomplete.

    Raised when:
    - Config file does not exist and no environment overrides are set
    - Config file contains invalid JSON
    - Config file fails Pydantic validation
    """
