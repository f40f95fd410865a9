"""Supabase clients for the identity provider and the teacher profile store.

SupabaseAuthClient talks to the GoTrue auth API:
- POST /auth/v1/signup                          create identity
- POST /auth/v1/token?grant_type=password       sign in
- POST /auth/v1/token?grant_type=refresh_token  refresh session
- POST /auth/v1/logout                          invalidate session

It keeps the current session in memory and in SessionStorage, refreshes it
shortly before expiry, and notifies subscribers of session changes
(INITIAL_SESSION on subscribe, then SIGNED_IN / SIGNED_OUT / TOKEN_REFRESHED).

SupabaseProfileStore reads and writes the teacher table through PostgREST:
- GET  /rest/v1/<table>?id=eq.<id>&select=*
- POST /rest/v1/<table>  (Prefer: return=representation)

Every request carries the project's anon key in the `apikey` header.
"""

from __future__ import annotations

__all__ = [
    "SupabaseAuthClient",
    "SupabaseProfileStore",
    "create_supabase_backend",
]

import asyncio
import itertools
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from classroom_auth.constants import AUTH_API_PREFIX, REST_API_PREFIX, SESSION_REFRESH_MARGIN_SECONDS
from classroom_auth.exceptions import (
    IdentityCreationError,
    InvalidCredentialsError,
    SessionStorageError,
    SignOutError,
    StoreError,
    TransientProviderError,
)
from classroom_auth.identity.models import (
    AuthChangeEvent,
    Identity,
    Profile,
    Session,
    SignUpResult,
    parse_session_response,
)
from classroom_auth.identity.protocol import SessionChangeCallback, Unsubscribe
from classroom_auth.identity.session_storage import MemorySessionStorage, SessionStorage
from classroom_auth.telemetry.system_logger import get_system_logger

if TYPE_CHECKING:
    from classroom_auth.config import SupabaseConfig


def _error_message(response: httpx.Response) -> str:
    """Extract the provider's error text from a GoTrue/PostgREST error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


class SupabaseAuthClient:
    """Identity provider client for Supabase auth (GoTrue).

    Implements the IdentityProviderClient protocol.

    Usage:
        auth = SupabaseAuthClient(config.supabase, storage=create_session_storage(config.storage))
        session = await auth.authenticate("teacher@school.org", "...")
        ...
        await auth.aclose()
    """

    def __init__(
        self,
        config: "SupabaseConfig",
        storage: SessionStorage | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the auth client.

        Args:
            config: Supabase project settings.
            storage: Session persistence (default: memory only).
            http_client: Optional httpx client (for testing).
        """
        self._base_url = config.url.rstrip("/")
        self._anon_key = config.anon_key
        self._storage = storage or MemorySessionStorage()
        self._client = http_client or httpx.AsyncClient(timeout=config.http_timeout_seconds)
        self._owns_client = http_client is None
        self._session: Session | None = None
        self._storage_loaded = False
        self._subscribers: dict[int, SessionChangeCallback] = {}
        self._subscriber_ids = itertools.count()
        # Serializes refreshes so concurrent readers don't spend the refresh token twice
        self._refresh_lock = asyncio.Lock()
        self._logger = get_system_logger()

    @property
    def session(self) -> Session | None:
        """Current in-memory session (not refreshed)."""
        return self._session

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Underlying HTTP client (shared with the profile store)."""
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self._base_url}{AUTH_API_PREFIX}{path}"

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"apikey": self._anon_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    # =========================================================================
    # IdentityProviderClient
    # =========================================================================

    async def create_identity(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
    ) -> SignUpResult:
        """Create an identity.

        When the project auto-confirms emails the response carries a session,
        which becomes the current session. Otherwise only the identity is
        returned and the teacher must confirm their email first.

        Raises:
            IdentityCreationError: Provider refused or could not be reached.
        """
        try:
            response = await self._client.post(
                self._url("/signup"),
                json={"email": email, "password": password, "data": metadata or {}},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise IdentityCreationError(
                "Could not reach the sign-up service", provider_message=str(e)
            ) from e

        if response.is_error:
            raise IdentityCreationError(provider_message=_error_message(response))

        try:
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            if data.get("access_token"):
                session = parse_session_response(data)
                self._set_session(session, AuthChangeEvent.SIGNED_IN)
                return SignUpResult(identity=session.user, session=session)
            identity = Identity.model_validate(data.get("user") or data)
        except (KeyError, ValueError) as e:
            raise IdentityCreationError(provider_message=f"Unexpected sign-up response: {e}") from e

        return SignUpResult(identity=identity, session=None)

    async def authenticate(self, email: str, password: str) -> Session:
        """Sign in with email and password.

        Raises:
            InvalidCredentialsError: Provider refused or could not be reached.
        """
        try:
            response = await self._client.post(
                self._url("/token"),
                params={"grant_type": "password"},
                json={"email": email, "password": password},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise InvalidCredentialsError(
                "Could not reach the sign-in service", provider_message=str(e)
            ) from e

        if response.is_error:
            raise InvalidCredentialsError(provider_message=_error_message(response))

        try:
            session = parse_session_response(response.json())
        except (KeyError, ValueError) as e:
            raise InvalidCredentialsError(provider_message=f"Unexpected sign-in response: {e}") from e

        self._set_session(session, AuthChangeEvent.SIGNED_IN)
        return session

    async def invalidate_session(self) -> None:
        """Sign out the current session.

        No current session is a successful no-op. A 401/403/404 from the
        provider means the session is already gone and also counts as success.

        Raises:
            SignOutError: Network failure or unexpected provider error. The
                local session is kept so the caller can retry.
        """
        session = await self._load_session()
        if session is None:
            self._clear_storage()
            return

        try:
            response = await self._client.post(
                self._url("/logout"),
                headers=self._headers(session.access_token),
            )
        except httpx.HTTPError as e:
            raise SignOutError(provider_message=str(e)) from e

        if response.is_error and response.status_code not in (401, 403, 404):
            raise SignOutError(provider_message=_error_message(response))

        self._set_session(None, AuthChangeEvent.SIGNED_OUT)

    async def get_current_session(self) -> Session | None:
        """Return the current session, refreshing it if it is about to expire.

        Returns:
            Session, or None when nobody is signed in or the refresh token was
            rejected.

        Raises:
            TransientProviderError: Refresh needed but the provider could not
                be reached.
        """
        session = await self._load_session()
        if session is None:
            return None
        if session.seconds_until_expiry > SESSION_REFRESH_MARGIN_SECONDS:
            return session
        return await self._refresh(session)

    def subscribe_to_session_changes(self, callback: SessionChangeCallback) -> Unsubscribe:
        """Register a session-change callback.

        Fires INITIAL_SESSION with the current in-memory session immediately.

        Returns:
            Callable that removes the subscription.
        """
        subscriber_id = next(self._subscriber_ids)
        self._subscribers[subscriber_id] = callback
        self._invoke(callback, AuthChangeEvent.INITIAL_SESSION, self._session)

        def unsubscribe() -> None:
            self._subscribers.pop(subscriber_id, None)

        return unsubscribe

    # =========================================================================
    # Session bookkeeping
    # =========================================================================

    async def _load_session(self) -> Session | None:
        """Return the in-memory session, loading it from storage on first use."""
        if not self._storage_loaded:
            self._storage_loaded = True
            try:
                self._session = self._storage.load()
            except SessionStorageError as e:
                self._logger.warning(
                    {
                        "event": "session_load_failed",
                        "message": f"Stored session unreadable, treating as signed out: {e}",
                        "error_type": type(e).__name__,
                    }
                )
                self._session = None
        return self._session

    async def _refresh(self, session: Session) -> Session | None:
        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            current = self._session
            if current is None:
                return None
            if current is not session and current.seconds_until_expiry > SESSION_REFRESH_MARGIN_SECONDS:
                return current

            if not current.refresh_token:
                self._set_session(None, AuthChangeEvent.SIGNED_OUT)
                return None

            try:
                response = await self._client.post(
                    self._url("/token"),
                    params={"grant_type": "refresh_token"},
                    json={"refresh_token": current.refresh_token},
                    headers=self._headers(),
                )
            except httpx.HTTPError as e:
                raise TransientProviderError(f"Session refresh failed: {e}") from e

            if response.status_code >= 500:
                raise TransientProviderError(f"Session refresh failed: {_error_message(response)}")

            if response.is_error:
                self._logger.info(
                    {
                        "event": "session_refresh_rejected",
                        "message": "Refresh token rejected, signing out locally",
                        "error": _error_message(response),
                    }
                )
                self._set_session(None, AuthChangeEvent.SIGNED_OUT)
                return None

            try:
                refreshed = parse_session_response(response.json())
            except (KeyError, ValueError) as e:
                raise TransientProviderError(f"Unexpected refresh response: {e}") from e

            self._set_session(refreshed, AuthChangeEvent.TOKEN_REFRESHED)
            return refreshed

    def _set_session(self, session: Session | None, event: AuthChangeEvent) -> None:
        self._session = session
        self._storage_loaded = True
        if session is None:
            self._clear_storage()
        else:
            try:
                self._storage.save(session)
            except SessionStorageError as e:
                # Session still usable for this process
                self._logger.warning(
                    {
                        "event": "session_save_failed",
                        "message": f"Could not persist session: {e}",
                        "error_type": type(e).__name__,
                    }
                )
        self._notify(event, session)

    def _clear_storage(self) -> None:
        try:
            self._storage.delete()
        except SessionStorageError as e:
            self._logger.warning(
                {
                    "event": "session_delete_failed",
                    "message": f"Could not delete stored session: {e}",
                    "error_type": type(e).__name__,
                }
            )

    def _notify(self, event: AuthChangeEvent, session: Session | None) -> None:
        for callback in list(self._subscribers.values()):
            self._invoke(callback, event, session)

    def _invoke(self, callback: SessionChangeCallback, event: AuthChangeEvent, session: Session | None) -> None:
        try:
            callback(event, session)
        except Exception as e:
            self._logger.error(
                {
                    "event": "session_callback_failed",
                    "message": f"Session change callback raised: {e}",
                    "error_type": type(e).__name__,
                    "provider_event": event.value,
                }
            )


class SupabaseProfileStore:
    """Teacher profile store backed by a PostgREST table.

    Implements the ProfileStore protocol. Requests are authorized with the
    current session's access token when an auth client is given (row level
    security), otherwise with the anon key alone.
    """

    def __init__(
        self,
        config: "SupabaseConfig",
        auth_client: SupabaseAuthClient | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = f"{config.url.rstrip('/')}{REST_API_PREFIX}/{config.profile_table}"
        self._anon_key = config.anon_key
        self._auth_client = auth_client
        self._client = http_client or httpx.AsyncClient(timeout=config.http_timeout_seconds)
        self._owns_client = http_client is None

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, **extra: str) -> dict[str, str]:
        token = self._anon_key
        if self._auth_client is not None and self._auth_client.session is not None:
            token = self._auth_client.session.access_token
        return {"apikey": self._anon_key, "Authorization": f"Bearer {token}", **extra}

    async def get_profile(self, identity_id: str) -> Profile | None:
        """Read the teacher profile for identity_id.

        Raises:
            StoreError: Request failed or returned an unexpected body.
        """
        try:
            response = await self._client.get(
                self._url,
                params={"id": f"eq.{identity_id}", "select": "*"},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise StoreError(f"Profile read failed: {e}") from e

        rows = self._rows(response, "read")
        if not rows:
            return None
        return self._parse(rows[0])

    async def create_profile(self, identity_id: str, fields: dict[str, Any]) -> Profile:
        """Insert the teacher profile row for identity_id.

        Raises:
            StoreError: Write failed (including duplicate id).
        """
        try:
            response = await self._client.post(
                self._url,
                json={**fields, "id": identity_id},
                headers=self._headers(Prefer="return=representation"),
            )
        except httpx.HTTPError as e:
            raise StoreError(f"Profile write failed: {e}") from e

        rows = self._rows(response, "write")
        if not rows:
            raise StoreError("Profile write returned no row", status_code=response.status_code)
        return self._parse(rows[0])

    @staticmethod
    def _rows(response: httpx.Response, operation: str) -> list[dict[str, Any]]:
        if response.is_error:
            raise StoreError(
                f"Profile {operation} failed: {_error_message(response)}",
                status_code=response.status_code,
            )
        try:
            rows = response.json()
        except ValueError as e:
            raise StoreError(f"Profile {operation} returned invalid JSON: {e}") from e
        if not isinstance(rows, list):
            raise StoreError(f"Profile {operation} returned unexpected body")
        return rows

    @staticmethod
    def _parse(row: dict[str, Any]) -> Profile:
        try:
            return Profile.model_validate(row)
        except ValidationError as e:
            raise StoreError(f"Profile row invalid: {e}") from e


def create_supabase_backend(
    config: "SupabaseConfig",
    storage: SessionStorage | None = None,
) -> tuple[SupabaseAuthClient, SupabaseProfileStore]:
    """Create auth client and profile store sharing one HTTP client.

    The caller owns the returned clients and closes them with
    `await auth.aclose()`; the store borrows the auth client's connection pool.
    """
    auth = SupabaseAuthClient(config, storage=storage)
    store = SupabaseProfileStore(config, auth_client=auth, http_client=auth.http_client)
    return auth, store
