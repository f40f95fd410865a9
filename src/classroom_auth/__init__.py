"""classroom-auth: teacher session reconciliation for the classroom client.

Keeps the identity provider's authenticated session and the application's
teacher profile row consistent before a user is treated as logged in.

Usage:
    from classroom_auth.reconciler import SessionReconciler
"""

__version__ = "0.3.0"
