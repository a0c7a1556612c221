from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from fastapi import Response

from mindchat_auth.identity.gateway import Session


ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"
SESSION_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE)

SESSION_MAX_AGE_SECONDS = 60 * 60 * 24 * 7  # 7 days


def cookie_options(is_production: bool = False) -> Dict[str, Any]:
    """Attributes shared by both session cookies."""
    return {
        "httponly": True,
        "secure": bool(is_production),  # HTTPS only in production
        "samesite": "lax",
        "path": "/",
        "max_age": SESSION_MAX_AGE_SECONDS,
    }


def write_session_cookies(response: Response, session: Session, options: Mapping[str, Any]) -> None:
    """Set access and refresh cookies with identical options."""
    response.set_cookie(key=ACCESS_TOKEN_COOKIE, value=session.access_token, **options)
    response.set_cookie(key=REFRESH_TOKEN_COOKIE, value=session.refresh_token, **options)


def clear_session_cookies(response: Response, *, is_production: bool = False) -> None:
    """Expire both session cookies. Safe to call when they are already gone."""
    opts = cookie_options(is_production)
    for name in SESSION_COOKIES:
        response.delete_cookie(
            key=name,
            path=opts["path"],
            secure=opts["secure"],
            httponly=opts["httponly"],
            samesite=opts["samesite"],
        )


def read_session_tokens(cookies: Mapping[str, str]) -> Tuple[Optional[str], Optional[str]]:
    return cookies.get(ACCESS_TOKEN_COOKIE) or None, cookies.get(REFRESH_TOKEN_COOKIE) or None
