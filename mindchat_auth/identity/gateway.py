"""Contract between the auth pipeline and the identity backend.

Every call returns data and error side by side (never raises for an upstream
failure). Callers must treat "error" and "success with a missing field"
(no user, no session) as separate outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol


class IdentityErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    OTHER = "other"


class IdentityError(Exception):
    """An upstream identity failure, classified into a closed set of kinds."""

    def __init__(
        self,
        kind: IdentityErrorKind,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = IdentityErrorKind(kind)
        self.message = message
        self.status = status
        # Backend error code (e.g. "bad_jwt"), when it sends one.
        self.code = code

    def __repr__(self) -> str:
        return f"IdentityError(kind={self.kind.value!r}, message={self.message!r}, status={self.status!r})"


@dataclass(frozen=True)
class User:
    id: str
    email: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> Optional["User"]:
        uid = (payload or {}).get("id")
        if not uid:
            return None
        return cls(id=str(uid), email=payload.get("email"), raw=dict(payload))

    def public(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email}


@dataclass(frozen=True)
class Session:
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    user: User
    expires_in: Optional[int] = None


@dataclass(frozen=True)
class AuthResponse:
    user: Optional[User] = None
    session: Optional[Session] = None
    error: Optional[IdentityError] = None


class IdentityGateway(Protocol):
    def sign_up(self, email: str, password: str) -> AuthResponse: ...

    def sign_in_with_password(self, email: str, password: str) -> AuthResponse: ...

    def sign_out(self) -> Optional[IdentityError]: ...

    def get_session(self) -> Optional[Session]: ...


class IdentityGatewayFactory(Protocol):
    """Builds a gateway bound to one request's session cookies."""

    def __call__(self, *, access_token: Optional[str], refresh_token: Optional[str]) -> IdentityGateway: ...
