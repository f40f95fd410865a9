"""Identity provider and profile store boundary.

- models: Identity, Session, Profile and the classroom record types
- protocol: IdentityProviderClient and ProfileStore contracts
- supabase: Supabase implementations of both contracts
- session_storage: Persistence for the provider session
"""

from classroom_auth.identity.models import (
    AuthChangeEvent,
    Identity,
    Profile,
    Session,
    SignUpResult,
)
from classroom_auth.identity.protocol import IdentityProviderClient, ProfileStore
from classroom_auth.identity.session_storage import SessionStorage, create_session_storage
from classroom_auth.identity.supabase import (
    SupabaseAuthClient,
    SupabaseProfileStore,
    create_supabase_backend,
)

__all__ = [
    "AuthChangeEvent",
    "Identity",
    "IdentityProviderClient",
    "Profile",
    "ProfileStore",
    "Session",
    "SessionStorage",
    "SignUpResult",
    "SupabaseAuthClient",
    "SupabaseProfileStore",
    "create_session_storage",
    "create_supabase_backend",
]
