"""Protocols for the reconciler's external collaborators.

The reconciler depends only on these; SupabaseAuthClient and
SupabaseProfileStore are the production implementations, and tests use
in-memory fakes.
"""

from __future__ import annotations

__all__ = [
    "IdentityProviderClient",
    "ProfileStore",
    "SessionChangeCallback",
    "Unsubscribe",
]

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from classroom_auth.identity.models import AuthChangeEvent, Profile, Session, SignUpResult

# Called synchronously by the provider; must not block.
SessionChangeCallback = Callable[[AuthChangeEvent, Optional[Session]], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class IdentityProviderClient(Protocol):
    """Credential-based identity provider."""

    async def create_identity(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
    ) -> SignUpResult:
        """Create an identity.

        Raises:
            IdentityCreationError: Provider refused.
        """
        ...

    async def authenticate(self, email: str, password: str) -> Session:
        """Sign in with email and password.

        Raises:
            InvalidCredentialsError: Provider refused.
        """
        ...

    async def invalidate_session(self) -> None:
        """Sign out the current session. No session is a successful no-op.

        Raises:
            SignOutError: Provider could not invalidate the session.
        """
        ...

    async def get_current_session(self) -> Session | None:
        """Return the current session, or None when there is none.

        Raises:
            TransientProviderError: Network failure (distinct from "no session").
        """
        ...

    def subscribe_to_session_changes(self, callback: SessionChangeCallback) -> Unsubscribe:
        """Register a callback fired on login, logout and refresh."""
        ...


@runtime_checkable
class ProfileStore(Protocol):
    """Keyed store holding one teacher profile per identity."""

    async def get_profile(self, identity_id: str) -> Profile | None:
        """Read the profile for identity_id.

        Raises:
            StoreError: Query failed.
        """
        ...

    async def create_profile(self, identity_id: str, fields: dict[str, Any]) -> Profile:
        """Insert the profile row for identity_id.

        Raises:
            StoreError: Write failed.
        """
        ...
