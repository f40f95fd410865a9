"""Route guard for the classroom UI.

Navigation waits until the startup restore has finished, then:
- a protected route without a current user redirects to the login route
- the login route with a current user redirects to the home route
- everything else (including unknown paths) is allowed
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_ROUTES",
    "NavigationDecision",
    "Route",
    "RouteGuard",
]

from dataclasses import dataclass
from typing import Iterable

from classroom_auth.constants import HOME_ROUTE, LOGIN_ROUTE
from classroom_auth.reconciler.state import SessionStateView


@dataclass(frozen=True)
class Route:
    path: str
    name: str
    requires_auth: bool = False


DEFAULT_ROUTES: tuple[Route, ...] = (
    Route(path=LOGIN_ROUTE, name="Login"),
    Route(path=HOME_ROUTE, name="Dashboard", requires_auth=True),
)


@dataclass(frozen=True)
class NavigationDecision:
    """Outcome of a navigation check.

    Attributes:
        allowed: True when navigation proceeds to the requested path.
        redirect_to: Target path when not allowed.
    """

    allowed: bool
    redirect_to: str | None = None

    @classmethod
    def allow(cls) -> "NavigationDecision":
        return cls(allowed=True)

    @classmethod
    def redirect(cls, path: str) -> "NavigationDecision":
        return cls(allowed=False, redirect_to=path)


class RouteGuard:
    """Decides navigation from the reconciler's exported session state."""

    def __init__(
        self,
        state_view: SessionStateView,
        routes: Iterable[Route] = DEFAULT_ROUTES,
        *,
        login_path: str = LOGIN_ROUTE,
        home_path: str = HOME_ROUTE,
    ) -> None:
        self._state_view = state_view
        self._routes = {route.path: route for route in routes}
        self._login_path = login_path
        self._home_path = home_path

    def resolve(self, path: str) -> Route | None:
        return self._routes.get(path)

    async def check(self, path: str) -> NavigationDecision:
        """Decide whether navigation to path may proceed.

        Blocks until loading is False so a restoring session is never
        mistaken for a signed-out one.
        """
        state = await self._state_view.wait_until_loaded()
        route = self.resolve(path)

        if route is not None and route.requires_auth and state.current_user is None:
            return NavigationDecision.redirect(self._login_path)
        if path == self._login_path and state.current_user is not None:
            return NavigationDecision.redirect(self._home_path)
        return NavigationDecision.allow()
