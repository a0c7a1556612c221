# tests/test_request_checks.py
from __future__ import annotations

import pytest

from mindchat_auth.log_codes import SecurityEvent
from mindchat_auth.security.request_checks import (
    RequestContext,
    check_request_shape,
    client_ip,
    is_supported_content_type,
    is_valid_user_agent,
)

from conftest import make_context

MAX = 1024


def test_client_ip_header_precedence() -> None:
    headers = {
        "x-forwarded-for": " 10.0.0.1 , 10.0.0.2",
        "x-real-ip": "10.0.0.3",
        "cf-connecting-ip": "10.0.0.4",
    }
    assert client_ip(headers) == "10.0.0.1"
    del headers["x-forwarded-for"]
    assert client_ip(headers) == "10.0.0.3"
    del headers["x-real-ip"]
    assert client_ip(headers) == "10.0.0.4"
    assert client_ip({}) == "unknown"


def test_untrusted_proxy_headers_use_peer_address() -> None:
    headers = {"x-forwarded-for": "203.0.113.7"}
    trusted = RequestContext(method="POST", path="/", headers=headers, peer_ip="192.0.2.1")
    direct = RequestContext(
        method="POST", path="/", headers=headers, peer_ip="192.0.2.1", trust_proxy_headers=False
    )

    assert trusted.client_ip == "203.0.113.7"
    assert direct.client_ip == "192.0.2.1"
    assert RequestContext(method="POST", path="/", headers={}, trust_proxy_headers=False).client_ip == "unknown"


@pytest.mark.parametrize(
    "ua, ok",
    [(None, False), ("", False), ("curl/8.0", False), ("x" * 10, True), ("x" * 512, True), ("x" * 513, False)],
)
def test_user_agent_bounds(ua, ok) -> None:
    assert is_valid_user_agent(ua) is ok


def test_supported_content_types() -> None:
    assert is_supported_content_type("application/x-www-form-urlencoded")
    assert is_supported_content_type("application/json; charset=utf-8")
    assert not is_supported_content_type("multipart/form-data; boundary=x")
    assert not is_supported_content_type("")


def test_well_formed_request_passes() -> None:
    assert check_request_shape(make_context(body=b"email=a"), max_bytes=MAX) is None


def test_oversized_request_by_header_or_body() -> None:
    by_header = make_context(headers={"content-length": str(MAX + 1)})
    assert check_request_shape(by_header, max_bytes=MAX) == (SecurityEvent.REQUEST_TOO_LARGE, "Request size too large")

    by_body = make_context(body=b"x" * (MAX + 1))
    assert check_request_shape(by_body, max_bytes=MAX)[0] == SecurityEvent.REQUEST_TOO_LARGE


def test_bad_user_agent_rejected() -> None:
    ctx = make_context(headers={"user-agent": "bot"})
    assert check_request_shape(ctx, max_bytes=MAX) == (SecurityEvent.INVALID_USER_AGENT, "Invalid user agent")


def test_content_type_only_enforced_for_post() -> None:
    post = make_context(headers={"content-type": "text/plain"})
    assert check_request_shape(post, max_bytes=MAX) == (SecurityEvent.INVALID_CONTENT_TYPE, "Invalid content type")

    get = make_context(method="GET", headers={"content-type": "text/plain"})
    assert check_request_shape(get, max_bytes=MAX) is None
