# tests/test_guard.py
from __future__ import annotations

import json

from fastapi.responses import JSONResponse

from mindchat_auth.auth.guard import INSUFFICIENT_PERMISSIONS, GuardedRequest, run_guarded
from mindchat_auth.auth.tiers import SIGNED_IN_TIERS, AuthorizationTier
from mindchat_auth.log_codes import AuthEvent

from conftest import auth_events, event_codes, make_context, make_session

PAID = frozenset({AuthorizationTier.PREMIUM_USER, AuthorizationTier.LICENSE_USER})


class RecordingHandler:
    def __init__(self) -> None:
        self.calls: list[GuardedRequest] = []

    def __call__(self, g: GuardedRequest) -> JSONResponse:
        self.calls.append(g)
        return JSONResponse({"ok": True, "tier": g.tier.value})


def _assert_forbidden(response) -> None:
    assert response.status_code == 403
    body = json.loads(response.body)
    assert body["error"] == "Forbidden: Access denied"
    assert body["message"] == INSUFFICIENT_PERMISSIONS
    assert body["statusCode"] == 403
    assert response.headers["x-frame-options"] == "DENY"


def test_anonymous_is_rejected_and_handler_not_called(services) -> None:
    handler = RecordingHandler()
    response = run_guarded(services, make_context(method="GET"), SIGNED_IN_TIERS, handler)
    _assert_forbidden(response)
    assert handler.calls == []


def test_wrong_tier_is_rejected_with_same_body(services, identity, profiles) -> None:
    session = make_session()
    identity.session = session
    profiles.rows[session.user.id] = {"role": "free"}
    handler = RecordingHandler()

    response = run_guarded(services, make_context(method="GET"), PAID, handler)

    _assert_forbidden(response)
    assert handler.calls == []


def test_allowed_tier_reaches_handler(services, identity, profiles) -> None:
    session = make_session()
    identity.session = session
    profiles.rows[session.user.id] = {"role": "license"}
    handler = RecordingHandler()
    ctx = make_context(method="GET", cookies={"sb-access-token": "at-user-1", "sb-refresh-token": "rt-user-1"})

    response = run_guarded(services, ctx, PAID, handler)

    assert response.status_code == 200
    assert len(handler.calls) == 1
    g = handler.calls[0]
    assert g.user == session.user
    assert g.session == session
    assert g.tier is AuthorizationTier.LICENSE_USER
    assert g.request is ctx
    assert identity.bound_tokens == [("at-user-1", "rt-user-1")]


def test_backend_failure_is_rejected(services, identity, caplog) -> None:
    identity.raise_on_get_session = ConnectionError("unreachable")
    handler = RecordingHandler()
    response = run_guarded(services, make_context(method="GET"), SIGNED_IN_TIERS, handler)
    _assert_forbidden(response)
    assert handler.calls == []


def test_rotated_session_is_written_back(services, identity, profiles, caplog) -> None:
    session = make_session()  # tokens differ from the stale cookies below
    identity.session = session
    profiles.rows[session.user.id] = {"role": "free"}
    ctx = make_context(method="GET", cookies={"sb-access-token": "stale", "sb-refresh-token": "old"})

    response = run_guarded(services, ctx, SIGNED_IN_TIERS, RecordingHandler())

    assert response.status_code == 200
    set_cookies = [v.decode() for k, v in response.raw_headers if k == b"set-cookie"]
    assert any(c.startswith("sb-access-token=at-user-1;") for c in set_cookies)
    assert any(c.startswith("sb-refresh-token=rt-user-1;") for c in set_cookies)
    assert AuthEvent.SESSION_REFRESHED in event_codes(caplog)


def test_rotated_session_is_written_back_on_wrong_tier(services, identity, profiles, caplog) -> None:
    session = make_session()
    identity.session = session
    profiles.rows[session.user.id] = {"role": "premium"}
    ctx = make_context(method="GET", cookies={"sb-access-token": "stale", "sb-refresh-token": "old"})
    handler = RecordingHandler()

    response = run_guarded(services, ctx, frozenset({AuthorizationTier.FREE_USER}), handler)

    _assert_forbidden(response)
    assert handler.calls == []
    set_cookies = [v.decode() for k, v in response.raw_headers if k == b"set-cookie"]
    assert any(c.startswith("sb-access-token=at-user-1;") for c in set_cookies)
    assert any(c.startswith("sb-refresh-token=rt-user-1;") for c in set_cookies)
    assert AuthEvent.SESSION_REFRESHED in event_codes(caplog)


def test_rotated_session_is_written_back_when_profile_is_missing(services, identity) -> None:
    identity.session = make_session()
    ctx = make_context(method="GET", cookies={"sb-access-token": "stale", "sb-refresh-token": "old"})

    response = run_guarded(services, ctx, SIGNED_IN_TIERS, RecordingHandler())

    _assert_forbidden(response)
    set_cookies = [v.decode() for k, v in response.raw_headers if k == b"set-cookie"]
    assert any(c.startswith("sb-refresh-token=rt-user-1;") for c in set_cookies)


def test_handler_logs_under_the_guard_request_id(services, identity, profiles, caplog) -> None:
    session = make_session()
    identity.session = session
    profiles.rows[session.user.id] = {"role": "free"}
    ctx = make_context(method="GET", cookies={"sb-access-token": "stale", "sb-refresh-token": "old"})

    def handler(g: GuardedRequest) -> JSONResponse:
        g.logger.child(user_id=g.user.id).log(AuthEvent.LOGIN_SUCCESS, "handler ran")
        return JSONResponse({"ok": True})

    run_guarded(services, ctx, SIGNED_IN_TIERS, handler)

    request_ids = {e["context"]["request_id"] for e in auth_events(caplog)}
    assert event_codes(caplog) == [AuthEvent.LOGIN_SUCCESS, AuthEvent.SESSION_REFRESHED]
    assert len(request_ids) == 1


def test_unchanged_session_sets_no_cookies(services, identity, profiles) -> None:
    session = make_session()
    identity.session = session
    profiles.rows[session.user.id] = {"role": "free"}
    ctx = make_context(method="GET", cookies={"sb-access-token": "at-user-1", "sb-refresh-token": "rt-user-1"})

    response = run_guarded(services, ctx, SIGNED_IN_TIERS, RecordingHandler())

    assert not any(k == b"set-cookie" for k, _ in response.raw_headers)
