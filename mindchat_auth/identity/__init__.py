"""Identity backend (Supabase Auth + profiles table) behind small contracts.

The pipeline only depends on `IdentityGateway` and `ProfileStore`; the
Supabase implementations talk to GoTrue and PostgREST over `requests`.
"""

from .gateway import (
    AuthResponse,
    IdentityError,
    IdentityErrorKind,
    IdentityGateway,
    IdentityGatewayFactory,
    Session,
    User,
)
from .profiles import ProfileStore, ProfileStoreError, SupabaseProfileStore
from .supabase import SupabaseIdentityGateway, supabase_gateway_factory

__all__ = [
    "AuthResponse",
    "IdentityError",
    "IdentityErrorKind",
    "IdentityGateway",
    "IdentityGatewayFactory",
    "Session",
    "User",
    "ProfileStore",
    "ProfileStoreError",
    "SupabaseProfileStore",
    "SupabaseIdentityGateway",
    "supabase_gateway_factory",
]
