from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from fastapi import Request

from mindchat_auth.log_codes import SecurityEvent


USER_AGENT_MIN = 10
USER_AGENT_MAX = 512

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class RequestContext:
    """The parts of an inbound request the auth pipeline needs.

    Built once per request (the body is read up front) so the pipeline itself
    can run synchronously on the worker pool.
    """

    method: str
    path: str
    headers: Dict[str, str]
    cookies: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    # Socket address of the connecting peer.
    peer_ip: Optional[str] = None
    # Only honour X-Forwarded-For and friends when a proxy sets them.
    trust_proxy_headers: bool = True

    @classmethod
    async def from_request(
        cls,
        request: Request,
        *,
        read_body: bool = True,
        trust_proxy_headers: bool = True,
    ) -> "RequestContext":
        body = await request.body() if read_body else b""
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            headers={k.lower(): v for k, v in request.headers.items()},
            cookies=dict(request.cookies),
            body=body,
            peer_ip=request.client.host if request.client else None,
            trust_proxy_headers=trust_proxy_headers,
        )

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def content_type(self) -> str:
        return self.header("content-type") or ""

    @property
    def user_agent(self) -> Optional[str]:
        return self.header("user-agent")

    @property
    def client_ip(self) -> str:
        if self.trust_proxy_headers:
            return client_ip(self.headers)
        return self.peer_ip or "unknown"


def client_ip(headers: Dict[str, str]) -> str:
    """Best-effort client address from proxy headers."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return (headers.get("cf-connecting-ip") or "").strip() or "unknown"


def is_valid_user_agent(user_agent: Optional[str]) -> bool:
    if not user_agent:
        return False
    return USER_AGENT_MIN <= len(user_agent) <= USER_AGENT_MAX


def is_valid_request_size(ctx: RequestContext, max_bytes: int) -> bool:
    raw = ctx.header("content-length")
    if raw:
        try:
            if int(raw) > max_bytes:
                return False
        except ValueError:
            return False
    return len(ctx.body) <= max_bytes


def is_supported_content_type(content_type: str) -> bool:
    ct = (content_type or "").lower()
    return FORM_CONTENT_TYPE in ct or JSON_CONTENT_TYPE in ct


def check_request_shape(ctx: RequestContext, *, max_bytes: int) -> Optional[Tuple[int, str]]:
    """Return (log code, client message) for the first failed check, else None."""
    if not is_valid_request_size(ctx, max_bytes):
        return SecurityEvent.REQUEST_TOO_LARGE, "Request size too large"

    if not is_valid_user_agent(ctx.user_agent):
        return SecurityEvent.INVALID_USER_AGENT, "Invalid user agent"

    if ctx.method == "POST" and not is_supported_content_type(ctx.content_type):
        return SecurityEvent.INVALID_CONTENT_TYPE, "Invalid content type"

    return None
