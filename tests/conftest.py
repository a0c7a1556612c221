# tests/conftest.py
from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, Dict, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from mindchat_auth.api.server import create_app
from mindchat_auth.auth.deps import AuthServices
from mindchat_auth.config import Config
from mindchat_auth.identity.gateway import AuthResponse, IdentityError, Session, User
from mindchat_auth.logs import EVENT_LOGGER_NAME, AuthLogger
from mindchat_auth.security.ratelimit import RateLimiter
from mindchat_auth.security.request_checks import RequestContext

BROWSER_UA = "Mozilla/5.0 (X11; Linux x86_64) pytest"
STRONG_PASSWORD = "Sup3r$ecret"


class FakeIdentity:
    """Identity gateway and factory in one, with canned results and a call log."""

    def __init__(self) -> None:
        self.sign_up_result = AuthResponse()
        self.sign_in_result = AuthResponse()
        self.sign_out_result: Optional[Exception] = None
        self.raise_on_sign_out: Optional[Exception] = None
        self.session: Optional[Session] = None
        self.raise_on_get_session: Optional[Exception] = None
        self.calls: List[tuple] = []
        self.bound_tokens: List[tuple] = []

    def __call__(self, *, access_token: Optional[str], refresh_token: Optional[str]) -> "FakeIdentity":
        self.bound_tokens.append((access_token, refresh_token))
        return self

    def sign_up(self, email: str, password: str) -> AuthResponse:
        self.calls.append(("sign_up", email, password))
        return self.sign_up_result

    def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        self.calls.append(("sign_in_with_password", email, password))
        return self.sign_in_result

    def sign_out(self) -> Optional[IdentityError]:
        self.calls.append(("sign_out",))
        if self.raise_on_sign_out is not None:
            raise self.raise_on_sign_out
        return self.sign_out_result  # type: ignore[return-value]

    def get_session(self) -> Optional[Session]:
        self.calls.append(("get_session",))
        if self.raise_on_get_session is not None:
            raise self.raise_on_get_session
        return self.session


class FakeProfileStore:
    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.tokens: List[str] = []
        self.fail_with: Optional[Exception] = None

    def with_token(self, access_token: str) -> "FakeProfileStore":
        self.tokens.append(access_token)
        return self

    def _maybe_fail(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("get_profile", user_id))
        self._maybe_fail()
        row = self.rows.get(user_id)
        return dict(row) if row is not None else None

    def get_role(self, user_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("get_role", user_id))
        self._maybe_fail()
        row = self.rows.get(user_id)
        return {"role": row.get("role")} if row is not None else None

    def create_profile(self, *, user_id: str, email: Optional[str], role: str) -> None:
        self.calls.append(("create_profile", user_id, email, role))
        self._maybe_fail()
        self.rows[user_id] = {"id": user_id, "email": email, "role": role}

    def update_profile(self, user_id: str, fields: Dict[str, Any]) -> None:
        self.calls.append(("update_profile", user_id, dict(fields)))
        self._maybe_fail()
        self.rows.setdefault(user_id, {"id": user_id}).update(fields)


def make_user(user_id: str = "user-1", email: str = "alice@example.com") -> User:
    return User(id=user_id, email=email, raw={"id": user_id, "email": email})


def make_session(user: Optional[User] = None) -> Session:
    user = user or make_user()
    return Session(access_token=f"at-{user.id}", refresh_token=f"rt-{user.id}", user=user)


def make_context(
    *,
    method: str = "POST",
    path: str = "/api/auth/login",
    headers: Optional[Dict[str, str]] = None,
    cookies: Optional[Dict[str, str]] = None,
    body: bytes = b"",
) -> RequestContext:
    base = {"user-agent": BROWSER_UA, "content-type": "application/x-www-form-urlencoded"}
    base.update({k.lower(): v for k, v in (headers or {}).items()})
    return RequestContext(method=method, path=path, headers=base, cookies=dict(cookies or {}), body=body)


def auth_events(caplog: pytest.LogCaptureFixture) -> List[Dict[str, Any]]:
    return [r.auth_event for r in caplog.records if hasattr(r, "auth_event")]


def event_codes(caplog: pytest.LogCaptureFixture) -> List[int]:
    return [e["code"] for e in auth_events(caplog)]


@pytest.fixture(autouse=True)
def _capture_auth_events(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger=EVENT_LOGGER_NAME)


@pytest.fixture()
def cfg() -> Config:
    return Config(
        APP_ENV="test",
        IS_PRODUCTION=False,
        PUBLIC_APP_URL="http://localhost:4321",
        SUPABASE_URL="https://project.supabase.test",
        SUPABASE_ANON_KEY="anon-test-key",
        CORS_ALLOW_ORIGINS="",
        RATE_LIMIT_SWEEP_SECONDS=3600,
        STRIPE_SECRET_KEY=None,
        STRIPE_WEBHOOK_SECRET=None,
        STRIPE_PRICE_ID_PREMIUM="price_test_premium",
    )


@pytest.fixture()
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture()
def profiles() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture()
def limiter() -> RateLimiter:
    return RateLimiter()


@pytest.fixture()
def services(cfg: Config, identity: FakeIdentity, profiles: FakeProfileStore, limiter: RateLimiter) -> AuthServices:
    return AuthServices(
        cfg=cfg,
        limiter=limiter,
        identity_factory=identity,
        profiles=profiles,
        logger=AuthLogger(include_stack=True),
    )


@pytest.fixture()
def app(cfg: Config, identity: FakeIdentity, profiles: FakeProfileStore, limiter: RateLimiter) -> FastAPI:
    return create_app(cfg, identity_factory=identity, profiles=profiles, limiter=limiter)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, follow_redirects=False) as c:
        yield c
