"""Tests for the Supabase auth client and profile store.

HTTP is mocked with httpx.MockTransport; each test installs a handler that
plays the GoTrue or PostgREST side.
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest

from classroom_auth.config import SupabaseConfig
from classroom_auth.exceptions import (
    IdentityCreationError,
    InvalidCredentialsError,
    SignOutError,
    StoreError,
    TransientProviderError,
)
from classroom_auth.identity.models import AuthChangeEvent, Identity, Session
from classroom_auth.identity.protocol import IdentityProviderClient, ProfileStore
from classroom_auth.identity.session_storage import MemorySessionStorage
from classroom_auth.identity.supabase import SupabaseAuthClient, SupabaseProfileStore, create_supabase_backend

Handler = Callable[[httpx.Request], httpx.Response]

USER = {"id": "user-1", "email": "a@x.com", "user_metadata": {"username": "Jan"}}


def token_body(access_token: str = "access-1", refresh_token: str = "refresh-1") -> dict[str, Any]:
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": 3600,
        "expires_at": int(time.time()) + 3600,
        "user": USER,
    }


def stored_session(*, expires_in: float = 3600, refresh_token: str | None = "refresh-0") -> Session:
    return Session(
        access_token="access-0",
        refresh_token=refresh_token,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        user=Identity.model_validate(USER),
    )


@pytest.fixture
def supabase_config() -> SupabaseConfig:
    return SupabaseConfig(url="https://demo.supabase.co", anon_key="anon-key")


@pytest.fixture
def make_auth(supabase_config: SupabaseConfig) -> Callable[..., SupabaseAuthClient]:
    def factory(handler: Handler, storage: MemorySessionStorage | None = None) -> SupabaseAuthClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return SupabaseAuthClient(supabase_config, storage=storage, http_client=client)

    return factory


def record_events(auth: SupabaseAuthClient) -> list[tuple[AuthChangeEvent, Session | None]]:
    events: list[tuple[AuthChangeEvent, Session | None]] = []
    auth.subscribe_to_session_changes(lambda event, session: events.append((event, session)))
    return events


# ============================================================================
# SupabaseAuthClient
# ============================================================================


class TestCreateIdentity:
    """Tests for sign-up requests."""

    @pytest.mark.asyncio
    async def test_auto_confirmed_sign_up_returns_session(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        """A sign-up response with tokens becomes the current session."""
        # Arrange
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=token_body())

        storage = MemorySessionStorage()
        auth = make_auth(handler, storage)
        events = record_events(auth)

        # Act
        result = await auth.create_identity("a@x.com", "Secret1!", metadata={"username": "Jan"})

        # Assert
        assert result.identity.id == "user-1"
        assert result.session is not None
        assert storage.exists()
        assert requests[0].url.path == "/auth/v1/signup"
        assert requests[0].headers["apikey"] == "anon-key"
        assert json.loads(requests[0].content)["data"] == {"username": "Jan"}
        assert [e for e, _ in events] == [AuthChangeEvent.INITIAL_SESSION, AuthChangeEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_confirmation_required_returns_identity_only(
        self, make_auth: Callable[..., SupabaseAuthClient]
    ) -> None:
        """Without tokens only the identity is returned."""
        auth = make_auth(lambda request: httpx.Response(200, json=USER))

        result = await auth.create_identity("a@x.com", "Secret1!")

        assert result.session is None
        assert result.identity.email == "a@x.com"
        assert auth.session is None

    @pytest.mark.asyncio
    async def test_provider_error_maps_to_identity_creation_error(
        self, make_auth: Callable[..., SupabaseAuthClient]
    ) -> None:
        """A 4xx carries the provider message."""
        auth = make_auth(lambda request: httpx.Response(422, json={"msg": "User already registered"}))

        with pytest.raises(IdentityCreationError) as exc_info:
            await auth.create_identity("a@x.com", "Secret1!")

        assert exc_info.value.provider_message == "User already registered"

    @pytest.mark.asyncio
    async def test_network_error_maps_to_identity_creation_error(
        self, make_auth: Callable[..., SupabaseAuthClient]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        auth = make_auth(handler)

        with pytest.raises(IdentityCreationError):
            await auth.create_identity("a@x.com", "Secret1!")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>proxy</html>"),
            httpx.Response(200, json=[{"id": "user-1"}]),
            httpx.Response(200, json={"user": {"email": "a@x.com"}}),
        ],
        ids=["html", "list", "no-id"],
    )
    async def test_unexpected_success_body_maps_to_identity_creation_error(
        self, make_auth: Callable[..., SupabaseAuthClient], response: httpx.Response
    ) -> None:
        """A 2xx body that is not a sign-up payload is still a typed error."""
        auth = make_auth(lambda request: response)

        with pytest.raises(IdentityCreationError) as exc_info:
            await auth.create_identity("a@x.com", "Secret1!")

        assert "Unexpected sign-up response" in (exc_info.value.provider_message or "")
        assert auth.session is None


class TestAuthenticate:
    """Tests for password sign-in."""

    @pytest.mark.asyncio
    async def test_success_stores_session(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        """Tokens are parsed, stored and announced."""
        # Arrange
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=token_body())

        storage = MemorySessionStorage()
        auth = make_auth(handler, storage)
        events = record_events(auth)

        # Act
        session = await auth.authenticate("a@x.com", "pw")

        # Assert
        assert session.access_token == "access-1"
        assert storage.load() == session
        assert requests[0].url.params["grant_type"] == "password"
        assert events[-1] == (AuthChangeEvent.SIGNED_IN, session)

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        auth = make_auth(
            lambda request: httpx.Response(
                400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}
            )
        )

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await auth.authenticate("a@x.com", "wrong")

        assert exc_info.value.provider_message == "Invalid login credentials"
        assert auth.session is None

    @pytest.mark.asyncio
    async def test_list_body_maps_to_invalid_credentials(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        auth = make_auth(lambda request: httpx.Response(200, json=[token_body()]))

        with pytest.raises(InvalidCredentialsError):
            await auth.authenticate("a@x.com", "pw")

        assert auth.session is None


class TestInvalidateSession:
    """Tests for sign-out."""

    @pytest.mark.asyncio
    async def test_without_session_is_noop(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        """No request is made when nobody is signed in."""
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(204)

        auth = make_auth(handler)

        await auth.invalidate_session()

        assert calls == []

    @pytest.mark.asyncio
    async def test_logout_clears_session(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        """Logout sends the bearer token and clears storage."""
        # Arrange
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        storage = MemorySessionStorage(stored_session())
        auth = make_auth(handler, storage)

        # Act
        await auth.invalidate_session()

        # Assert
        assert requests[0].url.path == "/auth/v1/logout"
        assert requests[0].headers["authorization"] == "Bearer access-0"
        assert auth.session is None
        assert not storage.exists()

    @pytest.mark.asyncio
    async def test_already_invalid_session_counts_as_success(
        self, make_auth: Callable[..., SupabaseAuthClient]
    ) -> None:
        storage = MemorySessionStorage(stored_session())
        auth = make_auth(lambda request: httpx.Response(401, json={"msg": "invalid JWT"}), storage)

        await auth.invalidate_session()

        assert await auth.get_current_session() is None

    @pytest.mark.asyncio
    async def test_server_error_raises_and_keeps_session(
        self, make_auth: Callable[..., SupabaseAuthClient]
    ) -> None:
        """A failed logout keeps the session so the caller can retry."""
        storage = MemorySessionStorage(stored_session())
        auth = make_auth(lambda request: httpx.Response(500, json={"message": "upstream"}), storage)

        with pytest.raises(SignOutError):
            await auth.invalidate_session()

        assert auth.session is not None
        assert storage.exists()


class TestGetCurrentSession:
    """Tests for restore and refresh."""

    @pytest.mark.asyncio
    async def test_fresh_stored_session_returned_without_request(
        self, make_auth: Callable[..., SupabaseAuthClient]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        auth = make_auth(handler, MemorySessionStorage(stored_session()))

        session = await auth.get_current_session()

        assert session is not None
        assert session.access_token == "access-0"

    @pytest.mark.asyncio
    async def test_expiring_session_is_refreshed(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        """A session inside the refresh margin is exchanged for a new one."""
        # Arrange
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=token_body(access_token="access-2"))

        storage = MemorySessionStorage(stored_session(expires_in=10))
        auth = make_auth(handler, storage)
        events = record_events(auth)

        # Act
        session = await auth.get_current_session()

        # Assert
        assert session is not None
        assert session.access_token == "access-2"
        assert requests[0].url.params["grant_type"] == "refresh_token"
        assert json.loads(requests[0].content) == {"refresh_token": "refresh-0"}
        assert events[-1][0] is AuthChangeEvent.TOKEN_REFRESHED
        assert storage.load() == session

    @pytest.mark.asyncio
    async def test_rejected_refresh_signs_out(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        """A revoked refresh token means nobody is signed in."""
        storage = MemorySessionStorage(stored_session(expires_in=-10))
        auth = make_auth(lambda request: httpx.Response(400, json={"msg": "Invalid Refresh Token"}), storage)
        events = record_events(auth)

        assert await auth.get_current_session() is None
        assert events[-1] == (AuthChangeEvent.SIGNED_OUT, None)
        assert not storage.exists()

    @pytest.mark.asyncio
    async def test_network_failure_on_refresh_is_transient(
        self, make_auth: Callable[..., SupabaseAuthClient]
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        auth = make_auth(handler, MemorySessionStorage(stored_session(expires_in=-10)))

        with pytest.raises(TransientProviderError):
            await auth.get_current_session()

    @pytest.mark.asyncio
    async def test_server_error_on_refresh_is_transient(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        auth = make_auth(
            lambda request: httpx.Response(503, text="unavailable"),
            MemorySessionStorage(stored_session(expires_in=-10)),
        )

        with pytest.raises(TransientProviderError):
            await auth.get_current_session()


class TestSubscriptions:
    """Tests for session change callbacks."""

    def test_initial_session_fires_on_subscribe(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        auth = make_auth(lambda request: httpx.Response(200))

        events = record_events(auth)

        assert events == [(AuthChangeEvent.INITIAL_SESSION, None)]

    @pytest.mark.asyncio
    async def test_unsubscribe_and_failing_callbacks(self, make_auth: Callable[..., SupabaseAuthClient]) -> None:
        """A raising callback does not break sign-in; unsubscribed ones are skipped."""
        # Arrange
        auth = make_auth(lambda request: httpx.Response(200, json=token_body()))
        received: list[AuthChangeEvent] = []

        def broken(event: AuthChangeEvent, session: Session | None) -> None:
            raise RuntimeError("boom")

        auth.subscribe_to_session_changes(broken)
        unsubscribe = auth.subscribe_to_session_changes(lambda event, session: received.append(event))
        unsubscribe()

        # Act
        await auth.authenticate("a@x.com", "pw")

        # Assert
        assert received == [AuthChangeEvent.INITIAL_SESSION]


# ============================================================================
# SupabaseProfileStore
# ============================================================================


class TestProfileStore:
    """Tests for teacher profile reads and writes."""

    @pytest.mark.asyncio
    async def test_get_profile_found(self, supabase_config: SupabaseConfig) -> None:
        """Rows are filtered by id and parsed."""
        # Arrange
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=[{"id": "user-1", "username": "Jan", "created_at": None}])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = SupabaseProfileStore(supabase_config, http_client=client)

        # Act
        profile = await store.get_profile("user-1")

        # Assert
        assert profile is not None
        assert profile.username == "Jan"
        assert requests[0].url.path == "/rest/v1/teachers"
        assert requests[0].url.params["id"] == "eq.user-1"
        assert requests[0].headers["authorization"] == "Bearer anon-key"

    @pytest.mark.asyncio
    async def test_get_profile_missing(self, supabase_config: SupabaseConfig) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])))
        store = SupabaseProfileStore(supabase_config, http_client=client)

        assert await store.get_profile("user-1") is None

    @pytest.mark.asyncio
    async def test_error_status_raises_store_error(self, supabase_config: SupabaseConfig) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"message": "JWT expired"}))
        )
        store = SupabaseProfileStore(supabase_config, http_client=client)

        with pytest.raises(StoreError) as exc_info:
            await store.get_profile("user-1")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_create_profile_uses_session_token(self, supabase_config: SupabaseConfig) -> None:
        """Writes ask for the row back and carry the teacher's access token."""
        # Arrange
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path.startswith("/auth/v1"):
                return httpx.Response(200, json=token_body())
            return httpx.Response(201, json=[{"id": "user-1", "username": "Jan"}])

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        auth = SupabaseAuthClient(supabase_config, http_client=client)
        store = SupabaseProfileStore(supabase_config, auth_client=auth, http_client=client)
        await auth.authenticate("a@x.com", "pw")

        # Act
        profile = await store.create_profile("user-1", {"username": "Jan"})

        # Assert
        write = requests[-1]
        assert profile.id == "user-1"
        assert write.headers["prefer"] == "return=representation"
        assert write.headers["authorization"] == "Bearer access-1"
        assert json.loads(write.content) == {"username": "Jan", "id": "user-1"}

    @pytest.mark.asyncio
    async def test_create_profile_conflict(self, supabase_config: SupabaseConfig) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(409, json={"message": "duplicate key value"})
            )
        )
        store = SupabaseProfileStore(supabase_config, http_client=client)

        with pytest.raises(StoreError) as exc_info:
            await store.create_profile("user-1", {"username": "Jan"})

        assert exc_info.value.status_code == 409


class TestBackendFactory:
    """Tests for create_supabase_backend."""

    @pytest.mark.asyncio
    async def test_clients_satisfy_protocols_and_share_http_client(self, supabase_config: SupabaseConfig) -> None:
        auth, store = create_supabase_backend(supabase_config, MemorySessionStorage())

        assert isinstance(auth, IdentityProviderClient)
        assert isinstance(store, ProfileStore)
        assert store._client is auth.http_client
        await auth.aclose()
