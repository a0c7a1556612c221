from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from fastapi import Request, Response
from starlette.concurrency import run_in_threadpool

from mindchat_auth.errors import AuthorizationDenied
from mindchat_auth.identity.gateway import Session, User
from mindchat_auth.log_codes import AuthEvent
from mindchat_auth.logs import AuthLogger
from mindchat_auth.security.request_checks import RequestContext

from .cookies import cookie_options, read_session_tokens, write_session_cookies
from .deps import AuthServices, get_services
from .tiers import AuthorizationTier, resolve_authorization


# Same body for "not signed in" and "wrong tier".
INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"


@dataclass(frozen=True)
class GuardedRequest:
    user: User
    session: Session
    tier: AuthorizationTier
    request: RequestContext
    services: AuthServices
    # Bound to this request's id; handlers log through it.
    logger: AuthLogger


GuardedHandler = Callable[[GuardedRequest], Response]


def run_guarded(
    services: AuthServices,
    ctx: RequestContext,
    allowed_tiers: frozenset,
    handler: GuardedHandler,
) -> Response:
    logger = services.request_logger(ctx)
    result = resolve_authorization(services.gateway_for(ctx), services.profiles, logger)

    if (
        result.user is None
        or result.session is None
        or result.tier is AuthorizationTier.ANONYMOUS
        or result.tier not in allowed_tiers
    ):
        response = AuthorizationDenied(INSUFFICIENT_PERMISSIONS).to_response()
    else:
        response = handler(
            GuardedRequest(
                user=result.user,
                session=result.session,
                tier=result.tier,
                request=ctx,
                services=services,
                logger=logger,
            )
        )

    # The identity backend rotated the tokens while resolving the session.
    # The old refresh token is spent, so the new pair goes out even on a 403.
    session = result.session
    if session is not None and session.access_token != read_session_tokens(ctx.cookies)[0]:
        write_session_cookies(response, session, cookie_options(services.cfg.IS_PRODUCTION))
        logger.log(AuthEvent.SESSION_REFRESHED, "Session refreshed", context={"user_id": session.user.id})
    return response


def guard(allowed_tiers: Iterable[AuthorizationTier], handler: GuardedHandler):
    """Wrap `handler` so only callers in `allowed_tiers` reach it.

    The returned coroutine is a FastAPI endpoint taking the raw Request.
    """
    allowed = frozenset(AuthorizationTier(t) for t in allowed_tiers)

    async def endpoint(request: Request) -> Response:
        services = get_services(request)
        ctx = await RequestContext.from_request(
            request, trust_proxy_headers=services.cfg.TRUST_PROXY_HEADERS
        )
        return await run_in_threadpool(run_guarded, services, ctx, allowed, handler)

    endpoint.__name__ = getattr(handler, "__name__", "guarded_endpoint")
    endpoint.__doc__ = handler.__doc__
    return endpoint
