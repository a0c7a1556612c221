"""Request pipeline for /api/auth/register, /login and /logout.

Each request walks the same linear path and stops at the first failure:

    rate check -> request shape check -> parse + validate -> identity call -> respond

(logout skips the shape and validation steps). Every step that fails raises
an `AuthError` carrying the client-facing response; anything else is caught
by the outer handler and reported as a generic 500.

The functions here are synchronous and run on FastAPI's worker pool. The
request body is read up front into a `RequestContext`.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Response
from fastapi.responses import RedirectResponse

from mindchat_auth.errors import (
    AuthenticationFailed,
    AuthError,
    RateLimited,
    UnexpectedFailure,
    UpstreamFailure,
    ValidationFailed,
)
from mindchat_auth.identity.gateway import IdentityErrorKind
from mindchat_auth.log_codes import AuthEvent, IdentityEvent, SecurityEvent, SystemEvent, ValidationEvent
from mindchat_auth.logs import AuthLogger
from mindchat_auth.security.ratelimit import RateLimitResult, RateLimitType
from mindchat_auth.security.request_checks import RequestContext, check_request_shape
from mindchat_auth.validation import (
    CredentialKind,
    Credentials,
    SemanticValidationFailed,
    parse_request_body,
    validate_semantics,
    validate_structure,
)

from .cookies import clear_session_cookies, cookie_options, write_session_cookies
from .deps import AuthServices


HOME = "/"
DEFAULT_PROFILE_ROLE = "free"

UNEXPECTED_MESSAGE = "An unexpected error occurred. Please try again."
UNEXPECTED_LOGOUT_MESSAGE = "An unexpected error occurred during logout. Please try again."


def _redirect_home() -> RedirectResponse:
    return RedirectResponse(url=HOME, status_code=302)


# -----------------------------
# Shared steps
# -----------------------------


def _log_rate_limited(logger: AuthLogger, kind: RateLimitType, result: RateLimitResult, message: str) -> None:
    logger.log(
        SecurityEvent.RATE_LIMIT_EXCEEDED,
        message,
        metadata={"operation": RateLimitType(kind).value, "reset_time": result.reset_time},
    )


def enforce_rate_limit(
    services: AuthServices,
    ctx: RequestContext,
    kind: RateLimitType,
    logger: AuthLogger,
    blocked_message: str,
) -> RateLimitResult:
    limiter = services.limiter
    result = limiter.check(kind, ctx.client_ip)
    if result.is_limited:
        _log_rate_limited(logger, kind, result, blocked_message)
        headers = limiter.headers(result)
        headers["Retry-After"] = str(limiter.retry_after_seconds(result))
        raise RateLimited("Rate limit exceeded. Please try again later.", headers=headers)
    return result


def enforce_request_shape(services: AuthServices, ctx: RequestContext, logger: AuthLogger) -> None:
    failure = check_request_shape(ctx, max_bytes=services.cfg.MAX_REQUEST_BYTES)
    if failure is not None:
        code, message = failure
        logger.log(code, f"Request rejected: {message}")
        raise ValidationFailed(message)


def read_credentials(ctx: RequestContext, kind: CredentialKind, logger: AuthLogger) -> Credentials:
    try:
        fields = validate_structure(parse_request_body(ctx.content_type, ctx.body))
    except ValidationFailed as e:
        logger.log_error(ValidationEvent.FORM_DATA_INVALID, "Invalid form data received", e)
        raise

    try:
        return validate_semantics(kind, fields)
    except SemanticValidationFailed as e:
        logger.log_error(
            e.code,
            f"{kind.value.capitalize()} input validation failed",
            e,
            context={"email": fields.email},
            metadata={"field": e.field},
        )
        raise


def _run(
    logger: AuthLogger,
    label: str,
    unexpected_message: str,
    body: Callable[[], Response],
    *,
    on_failure: Callable[[Response], None] | None = None,
) -> Response:
    try:
        return body()
    except AuthError as e:
        response = e.to_response()
    except Exception as e:
        logger.log_error(SystemEvent.INTERNAL_SERVER_ERROR, f"Unexpected error during {label}", e)
        response = UnexpectedFailure(unexpected_message).to_response()
    if on_failure is not None:
        on_failure(response)
    return response


# -----------------------------
# Endpoints
# -----------------------------


def register(services: AuthServices, ctx: RequestContext) -> Response:
    logger = services.request_logger(ctx)

    def _body() -> Response:
        enforce_rate_limit(
            services, ctx, RateLimitType.REGISTRATION, logger, "Registration attempt blocked by rate limiter"
        )
        enforce_request_shape(services, ctx, logger)
        creds = read_credentials(ctx, CredentialKind.REGISTRATION, logger)

        result = services.gateway_for(ctx).sign_up(creds.email, creds.password)

        if result.error is not None:
            logger.log_error(IdentityEvent.CONNECTION_FAILED, "Supabase sign up failed", result.error)
            raise UpstreamFailure("Could not sign up user.")

        if result.user is None:
            logger.log(
                IdentityEvent.CONNECTION_FAILED,
                "Supabase returned no user data after signup",
                context={"email": creds.email},
            )
            raise UpstreamFailure("Could not sign up user.")

        user = result.user
        profiles = services.profiles
        if result.session is not None:
            profiles = profiles.with_token(result.session.access_token)
        try:
            profiles.create_profile(user_id=user.id, email=user.email, role=DEFAULT_PROFILE_ROLE)
        except Exception as e:
            logger.log_error(
                IdentityEvent.DATABASE_ERROR,
                "Failed to create user profile",
                e,
                context={"user_id": user.id},
            )
            raise UpstreamFailure("Could not create user profile.")

        response = _redirect_home()
        if result.session is not None:
            write_session_cookies(response, result.session, cookie_options(services.cfg.IS_PRODUCTION))
            logger.log(
                AuthEvent.REGISTRATION_SUCCESS,
                "User registration successful",
                context={"user_id": user.id, "email": user.email},
            )
        else:
            # Email confirmation pending: the account exists but there is no session yet.
            logger.log(
                AuthEvent.EMAIL_VERIFICATION_SENT,
                "User registration successful, email verification required",
                context={"user_id": user.id, "email": user.email},
            )
        return response

    return _run(logger, "registration", UNEXPECTED_MESSAGE, _body)


def login(services: AuthServices, ctx: RequestContext) -> Response:
    logger = services.request_logger(ctx)

    def _body() -> Response:
        rate = enforce_rate_limit(
            services, ctx, RateLimitType.LOGIN, logger, "Login attempt blocked by rate limiter"
        )
        enforce_request_shape(services, ctx, logger)
        creds = read_credentials(ctx, CredentialKind.LOGIN, logger)

        result = services.gateway_for(ctx).sign_in_with_password(creds.email, creds.password)

        err = result.error
        if err is not None:
            if err.kind is IdentityErrorKind.INVALID_CREDENTIALS:
                logger.log_error(
                    IdentityEvent.INVALID_CREDENTIALS,
                    "Login authentication failed",
                    err,
                    context={"email": creds.email},
                )
                raise AuthenticationFailed("Invalid email or password.")

            if err.kind is IdentityErrorKind.EMAIL_NOT_CONFIRMED:
                logger.log_error(
                    IdentityEvent.EMAIL_NOT_CONFIRMED,
                    "Login failed - email not confirmed",
                    err,
                    context={"email": creds.email},
                )
                raise AuthenticationFailed("Please verify your email address before signing in.")

            logger.log_error(IdentityEvent.AUTH_ERROR, "Supabase authentication error", err)
            raise UpstreamFailure("Could not sign in user.")

        if result.user is None:
            logger.log(
                IdentityEvent.AUTH_ERROR,
                "Supabase returned no user data after sign in",
                context={"email": creds.email},
            )
            raise UpstreamFailure("Could not sign in user.")

        if result.session is None:
            logger.log(
                IdentityEvent.SESSION_EXPIRED,
                "Login successful but no session created",
                context={"user_id": result.user.id, "email": result.user.email},
            )
            raise UpstreamFailure("Could not create user session.")

        response = _redirect_home()
        write_session_cookies(response, result.session, cookie_options(services.cfg.IS_PRODUCTION))
        logger.log(
            AuthEvent.LOGIN_SUCCESS,
            "User login successful",
            context={"user_id": result.user.id, "email": result.user.email},
            metadata={"remaining_login_attempts": rate.remaining_attempts},
        )
        return response

    return _run(logger, "login", UNEXPECTED_MESSAGE, _body)


def logout(services: AuthServices, ctx: RequestContext) -> Response:
    """Sign out upstream (best effort) and always clear the local session.

    A rate-limited logout still clears the cookies and redirects; only the
    upstream sign-out is skipped.
    """
    logger = services.request_logger(ctx)
    is_production = services.cfg.IS_PRODUCTION

    def _body() -> Response:
        rate = services.limiter.check(RateLimitType.LOGOUT, ctx.client_ip)
        if rate.is_limited:
            _log_rate_limited(
                logger, RateLimitType.LOGOUT, rate, "Logout rate limited; skipping upstream sign out"
            )
            response = _redirect_home()
            clear_session_cookies(response, is_production=is_production)
            logger.log(AuthEvent.LOGOUT_SUCCESS, "User logout successful (local session cleared)")
            return response

        try:
            upstream_error: Exception | None = services.gateway_for(ctx).sign_out()
        except Exception as e:
            upstream_error = e

        response = _redirect_home()
        clear_session_cookies(response, is_production=is_production)

        if upstream_error is not None:
            logger.log_error(
                IdentityEvent.AUTH_ERROR,
                "Supabase logout failed, but cookies cleared locally",
                upstream_error,
            )
            logger.log(AuthEvent.LOGOUT_SUCCESS, "User logout successful (local session cleared)")
        else:
            logger.log(AuthEvent.LOGOUT_SUCCESS, "User logout successful")
        return response

    return _run(
        logger,
        "logout",
        UNEXPECTED_LOGOUT_MESSAGE,
        _body,
        on_failure=lambda r: clear_session_cookies(r, is_production=is_production),
    )
