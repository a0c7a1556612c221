"""Session and authorization core.

- `pipeline`: register / login / logout request handling
- `cookies`: the two HttpOnly session cookies
- `tiers`: profile role -> authorization tier
- `guard`: wraps handlers that require a tier

The identity backend owns the session tokens; this package only carries them
between the backend and the browser's cookies.
"""

from .cookies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    clear_session_cookies,
    cookie_options,
    write_session_cookies,
)
from .deps import AuthServices, get_services
from .guard import INSUFFICIENT_PERMISSIONS, GuardedRequest, guard
from .tiers import AuthorizationResult, AuthorizationTier, resolve_authorization, role_to_tier

__all__ = [
    "ACCESS_TOKEN_COOKIE",
    "REFRESH_TOKEN_COOKIE",
    "clear_session_cookies",
    "cookie_options",
    "write_session_cookies",
    "AuthServices",
    "get_services",
    "INSUFFICIENT_PERMISSIONS",
    "GuardedRequest",
    "guard",
    "AuthorizationResult",
    "AuthorizationTier",
    "resolve_authorization",
    "role_to_tier",
]
