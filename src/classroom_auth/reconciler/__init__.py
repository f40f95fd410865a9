"""Session reconciliation between the identity provider and teacher profiles.

- reconciler: SessionReconciler (owns session state, runs auth operations)
- state: SessionState, SessionPhase and the read-only state view
- guards: RouteGuard for protected navigation
"""

from classroom_auth.reconciler.guards import DEFAULT_ROUTES, NavigationDecision, Route, RouteGuard
from classroom_auth.reconciler.reconciler import OperationKind, SessionReconciler
from classroom_auth.reconciler.state import SessionPhase, SessionState, SessionStateView

__all__ = [
    "DEFAULT_ROUTES",
    "NavigationDecision",
    "OperationKind",
    "Route",
    "RouteGuard",
    "SessionPhase",
    "SessionReconciler",
    "SessionState",
    "SessionStateView",
]
