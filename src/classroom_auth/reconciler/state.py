"""Session state owned by the reconciler and observed by consumers.

SessionState is an immutable value. The store replaces it as a whole on
every transition, so a reader never sees fields from two different
transitions. Consumers get a SessionStateView, which can read and observe
but not write.
"""

from __future__ import annotations

__all__ = [
    "INITIAL_STATE",
    "SessionPhase",
    "SessionState",
    "SessionStateStore",
    "SessionStateView",
    "StateListener",
]

import asyncio
import itertools
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from classroom_auth.telemetry.system_logger import get_system_logger

if TYPE_CHECKING:
    from classroom_auth.identity.models import Identity
    from classroom_auth.identity.protocol import Unsubscribe


class SessionPhase(str, Enum):
    """Reconciler state machine phases."""

    INITIALIZING = "initializing"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    RECONCILING = "reconciling"


@dataclass(frozen=True)
class SessionState:
    """Exported session state.

    Attributes:
        current_user: Identity with a verified teacher profile, or None.
        loading: True until the startup restore has finished.
        phase: State machine phase.
    """

    current_user: "Identity | None" = None
    loading: bool = True
    phase: SessionPhase = SessionPhase.INITIALIZING

    @property
    def is_authenticated(self) -> bool:
        return self.phase is SessionPhase.AUTHENTICATED and self.current_user is not None

    @classmethod
    def authenticated(cls, identity: "Identity", *, loading: bool = False) -> "SessionState":
        return cls(current_user=identity, loading=loading, phase=SessionPhase.AUTHENTICATED)

    @classmethod
    def unauthenticated(cls, *, loading: bool = False) -> "SessionState":
        return cls(current_user=None, loading=loading, phase=SessionPhase.UNAUTHENTICATED)

    @classmethod
    def reconciling(cls, *, loading: bool) -> "SessionState":
        return cls(current_user=None, loading=loading, phase=SessionPhase.RECONCILING)


INITIAL_STATE = SessionState()

StateListener = Callable[[SessionState], None]


class SessionStateStore:
    """Holds the current SessionState and notifies listeners on change.

    Only the reconciler calls commit(). Once loading has become False it
    stays False; a commit trying to set it back is rejected.
    """

    def __init__(self) -> None:
        self._state = INITIAL_STATE
        self._listeners: dict[int, StateListener] = {}
        self._listener_ids = itertools.count()
        self._loaded = asyncio.Event()
        self._logger = get_system_logger()

    @property
    def state(self) -> SessionState:
        return self._state

    def commit(self, state: SessionState) -> None:
        """Replace the current state and notify listeners.

        Raises:
            ValueError: If state.loading is True after loading already finished.
        """
        if state.loading and self._loaded.is_set():
            raise ValueError("loading cannot return to True once the session is restored")
        if state == self._state:
            return

        self._state = state
        if not state.loading:
            self._loaded.set()

        for listener in list(self._listeners.values()):
            try:
                listener(state)
            except Exception as e:
                self._logger.error(
                    {
                        "event": "state_listener_failed",
                        "message": f"Session state listener raised: {e}",
                        "error_type": type(e).__name__,
                    }
                )

    def subscribe(self, listener: StateListener) -> "Unsubscribe":
        """Register a listener called with every new state.

        Returns:
            Callable that removes the listener.
        """
        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    async def wait_until_loaded(self) -> SessionState:
        """Wait until loading is False, then return the current state."""
        await self._loaded.wait()
        return self._state

    def view(self) -> "SessionStateView":
        return SessionStateView(self)


class SessionStateView:
    """Read-only access to a SessionStateStore for consumers."""

    __slots__ = ("_store",)

    def __init__(self, store: SessionStateStore) -> None:
        self._store = store

    @property
    def state(self) -> SessionState:
        return self._store.state

    def subscribe(self, listener: StateListener) -> "Unsubscribe":
        return self._store.subscribe(listener)

    async def wait_until_loaded(self) -> SessionState:
        return await self._store.wait_until_loaded()
