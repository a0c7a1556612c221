from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from mindchat_auth import __version__
from mindchat_auth.auth import pipeline
from mindchat_auth.auth.deps import AuthServices, get_services
from mindchat_auth.auth.guard import GuardedRequest, guard
from mindchat_auth.auth.tiers import SIGNED_IN_TIERS, AuthorizationTier
from mindchat_auth.billing.stripe_billing import (
    BillingError,
    create_billing_portal_session,
    create_checkout_session,
    validate_webhook_signature,
)
from mindchat_auth.config import Config, ConfigError, load_config, validate_config
from mindchat_auth.errors import AuthError, error_response, success_response
from mindchat_auth.identity.gateway import IdentityGatewayFactory
from mindchat_auth.identity.profiles import ProfileStore, SupabaseProfileStore
from mindchat_auth.identity.supabase import supabase_gateway_factory
from mindchat_auth.log_codes import SystemEvent
from mindchat_auth.logs import AuthLogger
from mindchat_auth.security.ratelimit import RateLimiter, RateLimitSweeper
from mindchat_auth.security.request_checks import RequestContext


# -----------------------------
# Protected handlers
# -----------------------------


def _me(g: GuardedRequest) -> Response:
    """Current caller's tier and public user fields."""
    return success_response({"tier": g.tier.value, "user": g.user.public()})


def _billing_unavailable() -> Response:
    return error_response(500, "Internal Server Error", "Billing is temporarily unavailable.")


def _checkout(g: GuardedRequest) -> Response:
    """Start a premium subscription checkout for a free user."""
    cfg = g.services.cfg
    logger = g.logger.child(user_id=g.user.id)
    base = cfg.PUBLIC_APP_URL.rstrip("/")
    try:
        url = create_checkout_session(
            cfg,
            g.services.profiles.with_token(g.session.access_token),
            logger,
            user_id=g.user.id,
            price_id=cfg.STRIPE_PRICE_ID_PREMIUM or "",
            success_url=f"{base}/billing/success",
            cancel_url=f"{base}/billing/cancel",
        )
    except (BillingError, ConfigError) as e:
        logger.log_error(SystemEvent.DEPENDENCY_FAILURE, "Checkout could not be started", e)
        return _billing_unavailable()
    return success_response({"url": url})


def _portal(g: GuardedRequest) -> Response:
    """Open the Stripe customer portal for a paying user."""
    cfg = g.services.cfg
    logger = g.logger.child(user_id=g.user.id)
    try:
        profile = g.services.profiles.with_token(g.session.access_token).get_profile(g.user.id) or {}
    except Exception as e:
        logger.log_error(SystemEvent.DEPENDENCY_FAILURE, "Profile lookup failed for billing portal", e)
        return _billing_unavailable()

    customer_id = profile.get("stripe_customer_id")
    if not customer_id:
        return error_response(400, "Bad Request", "No billing account found for this user.")

    try:
        url = create_billing_portal_session(
            cfg,
            logger,
            customer_id=str(customer_id),
            return_url=cfg.PUBLIC_APP_URL,
        )
    except (BillingError, ConfigError) as e:
        logger.log_error(SystemEvent.DEPENDENCY_FAILURE, "Billing portal could not be opened", e)
        return _billing_unavailable()
    return success_response({"url": url})


# -----------------------------
# App factory
# -----------------------------


def create_app(
    cfg: Optional[Config] = None,
    *,
    identity_factory: Optional[IdentityGatewayFactory] = None,
    profiles: Optional[ProfileStore] = None,
    limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Build the API.

    Collaborators default to the Supabase implementations and are created on
    startup, after the configuration has been validated.
    """
    cfg = cfg or load_config()
    limiter = limiter or RateLimiter()
    sweeper = RateLimitSweeper(limiter, interval_seconds=cfg.RATE_LIMIT_SWEEP_SECONDS)
    event_logger = AuthLogger(include_stack=not cfg.IS_PRODUCTION)

    app = FastAPI(title="MindChat Auth", version=__version__)
    app.state.cfg = cfg

    # CORS is mainly needed for local development (frontend dev server -> API).
    _cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if _cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.on_event("startup")
    def _on_startup() -> None:
        try:
            validate_config(cfg)
        except ConfigError as e:
            event_logger.log_error(SystemEvent.CONFIGURATION_ERROR, "Environment validation failed", e)
            raise

        app.state.auth = AuthServices(
            cfg=cfg,
            limiter=limiter,
            identity_factory=identity_factory or supabase_gateway_factory(cfg),
            profiles=profiles or SupabaseProfileStore(cfg),
            logger=event_logger,
        )
        sweeper.start()

    @app.on_event("shutdown")
    def _on_shutdown() -> None:
        sweeper.stop()

    @app.exception_handler(AuthError)
    async def _auth_error_handler(request: Request, exc: AuthError) -> Response:
        return exc.to_response()

    # -----------------------------
    # Health
    # -----------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    # -----------------------------
    # Auth
    # -----------------------------

    @app.post("/api/auth/register")
    async def auth_register(request: Request) -> Response:
        services = get_services(request)
        ctx = await RequestContext.from_request(request, trust_proxy_headers=services.cfg.TRUST_PROXY_HEADERS)
        return await run_in_threadpool(pipeline.register, services, ctx)

    @app.post("/api/auth/login")
    async def auth_login(request: Request) -> Response:
        services = get_services(request)
        ctx = await RequestContext.from_request(request, trust_proxy_headers=services.cfg.TRUST_PROXY_HEADERS)
        return await run_in_threadpool(pipeline.login, services, ctx)

    @app.post("/api/auth/logout")
    async def auth_logout(request: Request) -> Response:
        services = get_services(request)
        ctx = await RequestContext.from_request(
            request, read_body=False, trust_proxy_headers=services.cfg.TRUST_PROXY_HEADERS
        )
        return await run_in_threadpool(pipeline.logout, services, ctx)

    app.add_api_route("/api/auth/me", guard(SIGNED_IN_TIERS, _me), methods=["GET"])

    # -----------------------------
    # Billing
    # -----------------------------

    app.add_api_route(
        "/api/billing/checkout",
        guard({AuthorizationTier.FREE_USER}, _checkout),
        methods=["POST"],
    )
    app.add_api_route(
        "/api/billing/portal",
        guard({AuthorizationTier.PREMIUM_USER, AuthorizationTier.LICENSE_USER}, _portal),
        methods=["POST"],
    )

    @app.post("/api/billing/webhook")
    async def billing_webhook(request: Request) -> Response:
        services = get_services(request)
        payload = await request.body()
        signature = request.headers.get("stripe-signature")
        try:
            event = await run_in_threadpool(
                lambda: validate_webhook_signature(
                    services.cfg,
                    services.logger,
                    payload_bytes=payload,
                    signature=signature,
                )
            )
        except (BillingError, ConfigError):
            return error_response(400, "Bad Request", "Invalid webhook signature.")
        return success_response({"received": True, "id": event.get("id"), "type": event.get("type")})

    return app


app = create_app()
