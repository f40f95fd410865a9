"""Session reconciler: keeps the provider session and the teacher profile consistent.

An identity is only exposed as the current user after a teacher profile row
has been verified for it. The reconciler owns SessionState and moves it
through the phases:

    INITIALIZING --restore--> RECONCILING --> AUTHENTICATED | UNAUTHENTICATED
    UNAUTHENTICATED --sign_in/sign_up--> RECONCILING --> AUTHENTICATED | UNAUTHENTICATED
    AUTHENTICATED --sign_out--> UNAUTHENTICATED

Explicit operations (restore_session, sign_up, sign_in, sign_out) each run
under their own single-flight lock. Provider-pushed session changes arrive on
a latest-value channel and are applied by one listener task without profile
verification. Changes caused by an explicit operation are dropped, since that
operation commits the authoritative state; changes from elsewhere that arrive
mid-operation are held and applied after it finishes.

Usage:
    reconciler = SessionReconciler(auth_client, profile_store, config.reconciler)
    async with reconciler:                  # restore_session() on enter
        await reconciler.sign_in(email, password)
        print(reconciler.state.current_user)
"""

from __future__ import annotations

__all__ = [
    "OperationKind",
    "SessionReconciler",
]

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator

from classroom_auth.config import ReconcilerConfig
from classroom_auth.exceptions import (
    ClassroomAuthError,
    IdentityCreationError,
    InvalidCredentialsError,
    ProfileMissingError,
    ProfileProvisioningError,
    SessionError,
    SignOutError,
    StoreError,
)
from classroom_auth.identity.models import AuthChangeEvent
from classroom_auth.reconciler.channel import LatestValueChannel
from classroom_auth.reconciler.state import (
    SessionState,
    SessionStateStore,
    SessionStateView,
    StateListener,
)
from classroom_auth.telemetry.system_logger import get_system_logger
from classroom_auth.utils.logging.logging_helpers import hash_sensitive_id

if TYPE_CHECKING:
    from classroom_auth.identity.models import Identity, Profile, Session
    from classroom_auth.identity.protocol import IdentityProviderClient, ProfileStore, Unsubscribe
    from classroom_auth.telemetry.auth_logger import AuthLogger


class OperationKind(str, Enum):
    """Explicit operations, each guarded by its own single-flight lock."""

    RESTORE = "restore_session"
    SIGN_UP = "sign_up"
    SIGN_IN = "sign_in"
    SIGN_OUT = "sign_out"


class SessionReconciler:
    """Owns session state for the process and reconciles it with the backend.

    Lifecycle: construct, `await start()` (or `async with`), and
    `await dispose()` at shutdown. One instance per process, passed to
    consumers explicitly.
    """

    def __init__(
        self,
        provider: "IdentityProviderClient",
        profiles: "ProfileStore",
        config: ReconcilerConfig | None = None,
        *,
        auth_logger: "AuthLogger | None" = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            provider: Identity provider client.
            profiles: Teacher profile store.
            config: Provisioning mode, sign-up policy and settle timing.
            auth_logger: Audit logger for auth outcomes (optional for tests).
        """
        self._provider = provider
        self._profiles = profiles
        self._config = config or ReconcilerConfig()
        self._auth_logger = auth_logger
        self._logger = get_system_logger()

        self._store = SessionStateStore()
        self._locks = {kind: asyncio.Lock() for kind in OperationKind}
        self._in_flight = 0
        self._provider_calls = 0
        # Bumped by every explicit operation; restore yields to newer ones
        self._generation = 0
        self._pending_event: tuple[AuthChangeEvent, "Session | None"] | None = None

        self._events: LatestValueChannel[tuple[AuthChangeEvent, "Session | None"]] = LatestValueChannel()
        self._listener_task: asyncio.Task[None] | None = None
        self._unsubscribe: "Unsubscribe | None" = None
        self._disposed = False

    # =========================================================================
    # Consumer surface
    # =========================================================================

    @property
    def state(self) -> SessionState:
        """Current session state (immutable snapshot)."""
        return self._store.state

    @property
    def state_view(self) -> SessionStateView:
        """Read-only view for route guards and UI components."""
        return self._store.view()

    @property
    def config(self) -> ReconcilerConfig:
        return self._config

    def subscribe(self, listener: StateListener) -> "Unsubscribe":
        """Register a listener called with every new SessionState."""
        return self._store.subscribe(listener)

    async def wait_until_loaded(self) -> SessionState:
        """Wait for the startup restore to finish."""
        return await self._store.wait_until_loaded()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> "SessionReconciler":
        """Restore any existing session and start listening for provider changes."""
        if self._disposed:
            raise RuntimeError("SessionReconciler has been disposed")
        await self.restore_session()
        return self

    async def dispose(self) -> None:
        """Stop listening for provider changes. Idempotent."""
        self._disposed = True

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._listener_task is not None:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

    async def __aenter__(self) -> "SessionReconciler":
        return await self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        await self.dispose()

    # =========================================================================
    # Operations
    # =========================================================================

    async def restore_session(self) -> SessionState:
        """Restore the provider's existing session at startup.

        Never raises: provider failures and failed profile verification both
        end in UNAUTHENTICATED so a stale session cannot block startup.
        Registers the provider subscription (once) and leaves loading False.

        When a sign-in, sign-up or sign-out starts while restore is still
        running, that operation owns the outcome: restore only clears
        loading and leaves the provider session alone.

        Returns:
            The state after restoring.
        """
        async with self._single_flight(OperationKind.RESTORE):
            generation = self._generation
            identity: "Identity | None" = None
            error: BaseException | None = None

            try:
                async with self._provider_call():
                    session = await self._provider.get_current_session()
            except Exception as e:
                # Network failure, unreadable storage: same as no session
                session = None
                error = e
                self._logger.warning(
                    {
                        "event": "session_restore_failed",
                        "message": f"Could not restore session, starting signed out: {e}",
                        "error_type": type(e).__name__,
                    }
                )

            if session is not None and generation == self._generation:
                self._store.commit(SessionState.reconciling(loading=self.state.loading))
                profile, verify_error = await self._verify_profile(session.user)
                if profile is not None:
                    identity = session.user
                else:
                    error = ProfileMissingError(provider_message=str(verify_error) if verify_error else None)
                    self._log_verification_failed(session.user, OperationKind.RESTORE, verify_error)
                    if generation == self._generation:
                        await self._force_sign_out(session.user, reason="profile_missing")

            if generation != self._generation:
                self._logger.info(
                    {
                        "event": "session_restore_superseded",
                        "message": "Another session operation started during restore; keeping its outcome",
                        "phase": self.state.phase.value,
                    }
                )
                identity = self.state.current_user
                final = replace(self.state, loading=False)
            elif identity is not None:
                final = SessionState.authenticated(identity)
            else:
                final = SessionState.unauthenticated()
            self._store.commit(final)

            self._ensure_subscribed()

            if self._auth_logger is not None:
                self._auth_logger.log_session_restored(identity=identity, phase=final.phase.value, error=error)
            return final

    async def sign_up(self, email: str, password: str, username: str) -> "Identity":
        """Create a teacher account and make sure its profile exists.

        Args:
            email: Login email (non-empty).
            password: Password (provider policy applies).
            username: Display name stored on the teacher profile (non-empty,
                not required to be unique).

        Returns:
            The created identity. Whether it is now the current user depends
            on sign_up_policy and on whether the provider returned a session.

        Raises:
            ValueError: Empty email, password or username.
            IdentityCreationError: Provider refused; state unchanged.
            ProfileProvisioningError: Profile missing or not written; state
                ends UNAUTHENTICATED and the provider session is dropped.
        """
        email = email.strip()
        username = username.strip()
        if not email:
            raise ValueError("email must not be empty")
        if not password:
            raise ValueError("password must not be empty")
        if not username:
            raise ValueError("username must not be empty")

        async with self._single_flight(OperationKind.SIGN_UP):
            try:
                async with self._provider_call():
                    result = await self._provider.create_identity(email, password, metadata={"username": username})
            except IdentityCreationError as e:
                self._log_sign_up(email, error=e)
                raise
            except ClassroomAuthError as e:
                error = IdentityCreationError(provider_message=str(e))
                self._log_sign_up(email, error=error)
                raise error from e

            identity = result.identity
            self._generation += 1
            self._store.commit(SessionState.reconciling(loading=self.state.loading))

            try:
                if self._config.profile_provisioning == "trigger":
                    await self._await_provisioned_profile(identity)
                else:
                    await self._write_profile(identity, username)
            except ProfileProvisioningError as e:
                if result.session is not None:
                    await self._force_sign_out(identity, reason="profile_provisioning_failed")
                self._store.commit(SessionState.unauthenticated(loading=self.state.loading))
                self._log_sign_up(email, identity=identity, error=e)
                raise

            if self._config.sign_up_policy == "sign_in" and result.session is not None:
                self._store.commit(SessionState.authenticated(identity, loading=self.state.loading))
            else:
                if result.session is not None:
                    await self._force_sign_out(identity, reason="sign_in_required")
                self._store.commit(SessionState.unauthenticated(loading=self.state.loading))

            self._log_sign_up(email, identity=identity)
            return identity

    async def sign_in(self, email: str, password: str) -> "Identity":
        """Sign in and verify the teacher profile.

        Returns:
            The signed-in identity (now the current user).

        Raises:
            InvalidCredentialsError: Provider refused; state unchanged.
            ProfileMissingError: Identity has no profile; the provider session
                was invalidated and state is UNAUTHENTICATED.
        """
        async with self._single_flight(OperationKind.SIGN_IN):
            try:
                async with self._provider_call():
                    session = await self._provider.authenticate(email, password)
            except InvalidCredentialsError as e:
                self._log_sign_in(email, error=e)
                raise
            except ClassroomAuthError as e:
                error = InvalidCredentialsError(provider_message=str(e))
                self._log_sign_in(email, error=error)
                raise error from e

            self._generation += 1
            self._store.commit(SessionState.reconciling(loading=self.state.loading))

            profile, verify_error = await self._verify_profile(session.user)
            if profile is None:
                self._log_verification_failed(session.user, OperationKind.SIGN_IN, verify_error)
                # Provider must not stay signed in while local state denies access
                await self._force_sign_out(session.user, reason="profile_missing")
                self._store.commit(SessionState.unauthenticated(loading=self.state.loading))
                error = ProfileMissingError(provider_message=str(verify_error) if verify_error else None)
                self._log_sign_in(email, identity=session.user, error=error)
                raise error from verify_error

            self._store.commit(SessionState.authenticated(session.user, loading=self.state.loading))
            self._log_sign_in(email, identity=session.user)
            return session.user

    async def sign_out(self) -> None:
        """Invalidate the provider session and clear the current user.

        Signing out while already signed out succeeds.

        Raises:
            SignOutError: Provider could not invalidate the session; state unchanged.
        """
        async with self._single_flight(OperationKind.SIGN_OUT):
            identity = self.state.current_user
            try:
                async with self._provider_call():
                    await self._provider.invalidate_session()
            except SignOutError as e:
                self._log_sign_out(identity, error=e)
                raise
            except ClassroomAuthError as e:
                error = SignOutError(provider_message=str(e))
                self._log_sign_out(identity, error=error)
                raise error from e

            self._generation += 1
            self._store.commit(SessionState.unauthenticated(loading=self.state.loading))
            self._log_sign_out(identity)

    # =========================================================================
    # Reconciliation helpers
    # =========================================================================

    @asynccontextmanager
    async def _single_flight(self, kind: OperationKind) -> AsyncIterator[None]:
        async with self._locks[kind]:
            self._in_flight += 1
            try:
                yield
            finally:
                self._in_flight -= 1
                if not self._in_flight and self._pending_event is not None:
                    self._events.publish(self._pending_event)
                    self._pending_event = None

    @asynccontextmanager
    async def _provider_call(self) -> AsyncIterator[None]:
        """Mark changes pushed during this call as caused by the operation.

        A held change from before the call is superseded by its outcome.
        """
        self._pending_event = None
        self._provider_calls += 1
        try:
            yield
        finally:
            self._provider_calls -= 1

    async def _verify_profile(self, identity: "Identity") -> tuple["Profile | None", BaseException | None]:
        """Single read of the identity's profile. Fail-closed.

        Returns:
            (profile, None) when found, (None, None) when absent,
            (None, error) when the read failed.
        """
        try:
            profile = await self._profiles.get_profile(identity.id)
        except Exception as e:
            self._logger.warning(
                {
                    "event": "profile_read_failed",
                    "message": f"Profile verification read failed: {e}",
                    "error_type": type(e).__name__,
                    "identity_id": hash_sensitive_id(identity.id),
                }
            )
            return None, e

        if profile is None or profile.id != identity.id:
            return None, None
        return profile, None

    async def _await_provisioned_profile(self, identity: "Identity") -> "Profile":
        """Wait for a trigger-created profile, within the settle timeout.

        Raises:
            ProfileProvisioningError: Profile not found in time.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.settle_timeout_seconds
        delay = self._config.settle_interval_seconds
        last_error: BaseException | None = None

        for attempt in range(self._config.provisioning_poll_attempts):
            if attempt > 0 and loop.time() + delay > deadline:
                break
            await asyncio.sleep(delay)

            profile, last_error = await self._verify_profile(identity)
            if profile is not None:
                return profile

            self._logger.debug(
                {
                    "event": "profile_not_provisioned",
                    "message": "Teacher profile not present yet",
                    "attempt": attempt + 1,
                    "identity_id": hash_sensitive_id(identity.id),
                }
            )
            delay *= self._config.provisioning_backoff_multiplier

        self._log_verification_failed(identity, OperationKind.SIGN_UP, last_error)
        raise ProfileProvisioningError(
            provider_message=str(last_error) if last_error else None
        ) from last_error

    async def _write_profile(self, identity: "Identity", username: str) -> "Profile":
        """Create the profile row directly.

        The identity is not rolled back when this fails.

        Raises:
            ProfileProvisioningError: Write failed.
        """
        try:
            return await self._profiles.create_profile(identity.id, {"username": username})
        except StoreError as e:
            self._logger.error(
                {
                    "event": "profile_write_failed",
                    "message": "Teacher profile write failed; identity left without a profile",
                    "error_type": type(e).__name__,
                    "error": str(e),
                    "identity_id": hash_sensitive_id(identity.id),
                }
            )
            raise ProfileProvisioningError(provider_message=str(e)) from e

    async def _force_sign_out(self, identity: "Identity", *, reason: str) -> None:
        """Invalidate the provider session after a failed consistency check.

        Failures are logged, not raised: the caller is already reporting the
        consistency error.
        """
        try:
            async with self._provider_call():
                await self._provider.invalidate_session()
        except Exception as e:
            self._logger.error(
                {
                    "event": "forced_sign_out_failed",
                    "message": f"Provider session could not be invalidated ({reason}): {e}",
                    "error_type": type(e).__name__,
                    "identity_id": hash_sensitive_id(identity.id),
                }
            )
            if self._auth_logger is not None:
                self._auth_logger.log_sign_out(identity=identity, error=e, reason=reason)
            return

        if self._auth_logger is not None:
            self._auth_logger.log_sign_out(
                identity=identity,
                phase=self.state.phase.value,
                reason=reason,
            )

    # =========================================================================
    # Provider-pushed changes
    # =========================================================================

    def _ensure_subscribed(self) -> None:
        if self._disposed or self._unsubscribe is not None:
            return
        self._listener_task = asyncio.create_task(self._listen(), name="classroom-auth-session-events")
        self._unsubscribe = self._provider.subscribe_to_session_changes(self._on_provider_event)

    def _on_provider_event(self, event: AuthChangeEvent, session: "Session | None") -> None:
        """Provider callback: hand off to the listener task, never block.

        Changes pushed while an operation is calling the provider are that
        operation's own and are dropped; its commit describes the outcome.
        Other changes arriving mid-operation are held (latest wins) and
        applied once no operation is in flight.
        """
        if event is AuthChangeEvent.INITIAL_SESSION:
            # restore_session reconciles the initial session
            return
        if self._provider_calls:
            self._logger.debug(
                {
                    "event": "provider_event_dropped",
                    "message": "Provider session change caused by explicit operation",
                    "provider_event": event.value,
                }
            )
            return
        if self._in_flight:
            self._hold_event(event, session)
            return
        self._events.publish((event, session))

    def _hold_event(self, event: AuthChangeEvent, session: "Session | None") -> None:
        self._pending_event = (event, session)
        self._logger.debug(
            {
                "event": "provider_event_deferred",
                "message": "Provider session change held until the explicit operation finishes",
                "provider_event": event.value,
            }
        )

    async def _listen(self) -> None:
        while True:
            event, session = await self._events.receive()
            try:
                self._apply_provider_event(event, session)
            except Exception as e:
                self._logger.error(
                    {
                        "event": "session_event_failed",
                        "message": f"Failed to apply provider session change: {e}",
                        "error_type": type(e).__name__,
                        "provider_event": event.value,
                    }
                )

    def _apply_provider_event(self, event: AuthChangeEvent, session: "Session | None") -> None:
        """Mirror the provider's session into local state without verification."""
        if event is AuthChangeEvent.INITIAL_SESSION:
            return

        if self._in_flight:
            # Queued before the operation started; its commit supersedes this
            self._logger.debug(
                {
                    "event": "provider_event_superseded",
                    "message": "Provider session change superseded by explicit operation",
                    "provider_event": event.value,
                }
            )
            return

        current = self.state
        if session is None:
            new_state = SessionState.unauthenticated(loading=current.loading)
        else:
            new_state = SessionState.authenticated(session.user, loading=current.loading)

        if new_state == current:
            return

        self._store.commit(new_state)
        self._logger.info(
            {
                "event": "provider_session_changed",
                "message": f"Session updated by provider ({event.value})",
                "provider_event": event.value,
                "phase": new_state.phase.value,
            }
        )
        if self._auth_logger is not None:
            self._auth_logger.log_passive_change(
                provider_event=event.value,
                identity=new_state.current_user,
                phase=new_state.phase.value,
            )

    # =========================================================================
    # Audit helpers
    # =========================================================================

    def _log_verification_failed(
        self,
        identity: "Identity",
        operation: OperationKind,
        error: BaseException | None,
    ) -> None:
        if self._auth_logger is not None:
            self._auth_logger.log_profile_verification_failed(
                identity=identity,
                operation=operation.value,
                error=error,
            )

    def _log_sign_up(
        self,
        email: str,
        *,
        identity: "Identity | None" = None,
        error: SessionError | None = None,
    ) -> None:
        if self._auth_logger is not None:
            self._auth_logger.log_sign_up(
                email=email,
                identity=identity,
                phase=self.state.phase.value,
                error=error,
                provisioning=self._config.profile_provisioning,
            )

    def _log_sign_in(
        self,
        email: str,
        *,
        identity: "Identity | None" = None,
        error: SessionError | None = None,
    ) -> None:
        if self._auth_logger is not None:
            self._auth_logger.log_sign_in(
                email=email,
                identity=identity,
                phase=self.state.phase.value,
                error=error,
            )

    def _log_sign_out(self, identity: "Identity | None", *, error: SessionError | None = None) -> None:
        if self._auth_logger is not None:
            self._auth_logger.log_sign_out(identity=identity, phase=self.state.phase.value, error=error)
