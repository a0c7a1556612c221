from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

import jwt
import requests

from mindchat_auth.config import Config
from mindchat_auth.logs import get_logger

from .gateway import AuthResponse, IdentityError, IdentityErrorKind, Session, User


log = get_logger(__name__)


def _error_message(payload: Dict[str, Any], fallback: str) -> str:
    for key in ("msg", "message", "error_description", "error"):
        val = payload.get(key)
        if isinstance(val, str) and val.strip():
            return val.strip()
    return fallback


def classify_error(payload: Dict[str, Any], *, status: Optional[int] = None) -> IdentityError:
    """Turn a GoTrue error body into a tagged IdentityError.

    Newer GoTrue versions send a stable `error_code`; older ones only a
    human-readable message, so we fall back to matching on that.
    """
    message = _error_message(payload, f"identity error (HTTP {status})")
    code = str(payload.get("error_code") or payload.get("code") or "").strip().lower()
    lowered = message.lower()

    if code == "invalid_credentials" or "invalid login credentials" in lowered:
        kind = IdentityErrorKind.INVALID_CREDENTIALS
    elif code == "email_not_confirmed" or "email not confirmed" in lowered:
        kind = IdentityErrorKind.EMAIL_NOT_CONFIRMED
    else:
        kind = IdentityErrorKind.OTHER
    return IdentityError(kind, message, status=status, code=code or None)


# GoTrue answers an expired or unreadable access token with 401, or with 403
# and one of these codes.
_EXPIRED_TOKEN_CODES = frozenset({"bad_jwt", "session_expired"})

# Refresh slightly before the token lapses so it does not expire in flight.
EXPIRY_MARGIN_SECONDS = 10


def is_expired_token_error(err: IdentityError) -> bool:
    if err.status == 401:
        return True
    return err.status == 403 and err.code in _EXPIRED_TOKEN_CODES


def access_token_expired(token: str, *, now: Optional[float] = None) -> bool:
    """Whether the JWT `exp` claim has passed.

    The signature is not checked here; GoTrue does that. Tokens we cannot
    read are left for GoTrue to judge.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return False
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    current = time.time() if now is None else now
    return exp <= current + EXPIRY_MARGIN_SECONDS


def _session_from_payload(payload: Dict[str, Any]) -> Tuple[Optional[User], Optional[Session]]:
    """GoTrue returns either a session (with nested user) or a bare user."""
    if payload.get("access_token"):
        user = User.from_payload(payload.get("user") or {})
        refresh = payload.get("refresh_token")
        if user is None or not refresh:
            return user, None
        expires_in = payload.get("expires_in")
        session = Session(
            access_token=str(payload["access_token"]),
            refresh_token=str(refresh),
            user=user,
            expires_in=int(expires_in) if expires_in is not None else None,
        )
        return user, session

    return User.from_payload(payload.get("user") or payload), None


class SupabaseIdentityGateway:
    """GoTrue (Supabase Auth) REST client bound to one request's cookies."""

    def __init__(
        self,
        cfg: Config,
        *,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        http: Optional[requests.Session] = None,
    ) -> None:
        if not cfg.SUPABASE_URL or not cfg.SUPABASE_ANON_KEY:
            raise RuntimeError("supabase_not_configured")
        self.base_url = f"{cfg.SUPABASE_URL.rstrip('/')}/auth/v1"
        self.anon_key = cfg.SUPABASE_ANON_KEY
        self.timeout = float(cfg.IDENTITY_TIMEOUT_SECONDS)
        self.access_token = access_token or None
        self.refresh_token = refresh_token or None
        self._http = http or requests.Session()

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {bearer or self.anon_key}",
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: Optional[str] = None,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Optional[Dict[str, Any]], Optional[IdentityError]]:
        url = f"{self.base_url}{path}"
        try:
            r = self._http.request(
                method,
                url,
                headers=self._headers(bearer),
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            return None, IdentityError(IdentityErrorKind.OTHER, f"identity request timed out: {e}")
        except requests.RequestException as e:
            return None, IdentityError(IdentityErrorKind.OTHER, f"identity request failed: {e}")

        try:
            payload = r.json() if r.content else {}
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if r.status_code >= 400:
            return None, classify_error(payload, status=r.status_code)
        return payload, None

    def sign_up(self, email: str, password: str) -> AuthResponse:
        payload, err = self._request("POST", "/signup", json={"email": email, "password": password})
        if err is not None:
            return AuthResponse(error=err)
        user, session = _session_from_payload(payload or {})
        return AuthResponse(user=user, session=session)

    def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        payload, err = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if err is not None:
            return AuthResponse(error=err)
        user, session = _session_from_payload(payload or {})
        return AuthResponse(user=user, session=session)

    def sign_out(self) -> Optional[IdentityError]:
        if not self.access_token:
            # Nothing to revoke upstream.
            return None
        _, err = self._request("POST", "/logout", bearer=self.access_token)
        self.access_token = None
        self.refresh_token = None
        return err

    def refresh_session(self) -> Optional[Session]:
        """Exchange the refresh token for a new token pair."""
        if not self.refresh_token:
            return None
        payload, err = self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": self.refresh_token},
        )
        if err is not None:
            log.debug("session refresh rejected: %s", err.message)
            return None
        _, session = _session_from_payload(payload or {})
        if session is not None:
            self.access_token = session.access_token
            self.refresh_token = session.refresh_token
        return session

    def get_session(self) -> Optional[Session]:
        """Validate the cookie session, refreshing it once if the access token has expired.

        Expiry is read from the token's `exp` claim first, then from GoTrue's
        rejection. A refreshed session carries new tokens; callers compare
        them with the cookies to decide whether to rewrite them.
        """
        if not self.access_token or not self.refresh_token:
            return None
        if access_token_expired(self.access_token):
            return self.refresh_session()
        payload, err = self._request("GET", "/user", bearer=self.access_token)
        if err is not None:
            if is_expired_token_error(err):
                return self.refresh_session()
            log.debug("session lookup rejected: %s", err.message)
            return None
        user = User.from_payload(payload or {})
        if user is None:
            return None
        return Session(access_token=self.access_token, refresh_token=self.refresh_token, user=user)


def supabase_gateway_factory(cfg: Config, http: Optional[requests.Session] = None):
    """Return a factory that builds per-request gateways sharing one HTTP pool."""
    pool = http or requests.Session()

    def _factory(*, access_token: Optional[str], refresh_token: Optional[str]) -> SupabaseIdentityGateway:
        return SupabaseIdentityGateway(
            cfg,
            access_token=access_token,
            refresh_token=refresh_token,
            http=pool,
        )

    return _factory
