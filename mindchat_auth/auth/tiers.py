from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from mindchat_auth.identity.gateway import IdentityGateway, Session, User
from mindchat_auth.identity.profiles import ProfileStore
from mindchat_auth.log_codes import IdentityEvent
from mindchat_auth.logs import AuthLogger


class AuthorizationTier(str, Enum):
    ANONYMOUS = "anonymous"
    FREE_USER = "free_user"
    PREMIUM_USER = "premium_user"
    LICENSE_USER = "license_user"


SIGNED_IN_TIERS = frozenset(
    {AuthorizationTier.FREE_USER, AuthorizationTier.PREMIUM_USER, AuthorizationTier.LICENSE_USER}
)

_ROLE_TIERS = {
    "premium": AuthorizationTier.PREMIUM_USER,
    "license": AuthorizationTier.LICENSE_USER,
    "free": AuthorizationTier.FREE_USER,
}


@dataclass(frozen=True)
class AuthorizationResult:
    """The caller's tier.

    `session` is set whenever the session lookup succeeded, even if the tier
    ended up ANONYMOUS, so a refreshed token pair can still reach the client.
    """

    tier: AuthorizationTier
    user: Optional[User] = None
    session: Optional[Session] = None


ANONYMOUS = AuthorizationResult(tier=AuthorizationTier.ANONYMOUS)


def is_known_role(role: object) -> bool:
    return isinstance(role, str) and role in _ROLE_TIERS


def role_to_tier(role: object) -> AuthorizationTier:
    """Total mapping from a profile role to a tier.

    Anything other than "premium" or "license" (including None, "" and
    legacy strings) is a free user.
    """
    if isinstance(role, str):
        return _ROLE_TIERS.get(role, AuthorizationTier.FREE_USER)
    return AuthorizationTier.FREE_USER


def resolve_authorization(
    gateway: IdentityGateway,
    profiles: ProfileStore,
    logger: AuthLogger,
) -> AuthorizationResult:
    """Resolve the caller's tier from the session and the profile role.

    Never raises: every failure path is ANONYMOUS (and logged where it is
    a backend problem rather than a plain signed-out visitor).
    """
    try:
        session = gateway.get_session()
    except Exception as e:
        logger.log_error(IdentityEvent.AUTH_ERROR, "Session lookup failed during state check.", e)
        return ANONYMOUS

    if session is None or session.user is None:
        return ANONYMOUS

    user = session.user
    signed_out = AuthorizationResult(tier=AuthorizationTier.ANONYMOUS, session=session)
    try:
        profile = profiles.with_token(session.access_token).get_role(user.id)
    except Exception as e:
        logger.log_error(
            IdentityEvent.DATABASE_ERROR,
            "Failed to fetch user profile for state check.",
            e,
            context={"user_id": user.id},
        )
        return signed_out

    if profile is None:
        logger.log_error(
            IdentityEvent.USER_NOT_FOUND,
            "User profile not found during state check.",
            LookupError("Profile not found"),
            context={"user_id": user.id},
        )
        return signed_out

    role = profile.get("role")
    if not is_known_role(role):
        logger.log(
            IdentityEvent.UNKNOWN_ROLE,
            "Unrecognized profile role; treating as free user.",
            context={"user_id": user.id},
            metadata={"role": role},
        )

    return AuthorizationResult(tier=role_to_tier(role), user=user, session=session)
