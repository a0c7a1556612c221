from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from mindchat_auth.config import Config
from mindchat_auth.identity.gateway import IdentityGateway, IdentityGatewayFactory
from mindchat_auth.identity.profiles import ProfileStore
from mindchat_auth.logs import AuthLogger, new_request_id
from mindchat_auth.security.ratelimit import RateLimiter
from mindchat_auth.security.request_checks import RequestContext

from .cookies import read_session_tokens


@dataclass
class AuthServices:
    """Process-wide collaborators of the auth pipeline (kept on app.state)."""

    cfg: Config
    limiter: RateLimiter
    identity_factory: IdentityGatewayFactory
    profiles: ProfileStore
    logger: AuthLogger

    def gateway_for(self, ctx: RequestContext) -> IdentityGateway:
        """A gateway bound to the caller's session cookies."""
        access, refresh = read_session_tokens(ctx.cookies)
        return self.identity_factory(access_token=access, refresh_token=refresh)

    def request_logger(self, ctx: RequestContext) -> AuthLogger:
        return self.logger.child(
            method=ctx.method,
            path=ctx.path,
            ip=ctx.client_ip,
            user_agent=ctx.user_agent,
            request_id=ctx.header("x-request-id") or new_request_id(),
        )


def get_services(request: Request) -> AuthServices:
    services: Optional[AuthServices] = getattr(request.app.state, "auth", None)
    if services is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return services
