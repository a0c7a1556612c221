from __future__ import annotations

from typing import Any, Dict, Optional

from mindchat_auth.config import Config, validate_billing_config
from mindchat_auth.identity.profiles import ProfileStore
from mindchat_auth.log_codes import BillingEvent
from mindchat_auth.logs import AuthLogger


class BillingError(RuntimeError):
    """A billing operation failed. The message is safe to log, not to show."""


def _get_stripe(cfg: Config):
    try:
        import stripe  # type: ignore
    except Exception as e:
        raise RuntimeError(
            "Stripe selected but the 'stripe' package is not installed. Install stripe and try again."
        ) from e

    validate_billing_config(cfg)
    stripe.api_key = cfg.STRIPE_SECRET_KEY
    return stripe


def _require(value: Optional[str], name: str) -> str:
    v = (value or "").strip()
    if not v:
        raise BillingError(f"{name} is required")
    return v


def create_checkout_session(
    cfg: Config,
    profiles: ProfileStore,
    logger: AuthLogger,
    *,
    user_id: str,
    price_id: str,
    success_url: str,
    cancel_url: str,
) -> str:
    """Create a Stripe Checkout Session URL for the premium subscription.

    Creates the Stripe customer on first checkout and stores its id on the
    profile so later checkouts and the billing portal reuse it.
    """
    user_id = _require(user_id, "user_id")
    price_id = _require(price_id, "price_id")
    success_url = _require(success_url, "success_url")
    cancel_url = _require(cancel_url, "cancel_url")

    stripe = _get_stripe(cfg)

    try:
        profile = profiles.get_profile(user_id)
    except Exception as e:
        logger.log_error(BillingEvent.PROFILE_RETRIEVAL_FAILED, "Failed to retrieve user profile for checkout", e)
        raise BillingError("profile_lookup_failed") from e
    if profile is None:
        err = BillingError("profile_not_found")
        logger.log_error(BillingEvent.PROFILE_RETRIEVAL_FAILED, "Failed to retrieve user profile for checkout", err)
        raise err

    customer_id = profile.get("stripe_customer_id")
    if not customer_id:
        try:
            customer = stripe.Customer.create(email=profile.get("email"), metadata={"userId": user_id})
            customer_id = customer["id"]
        except Exception as e:
            logger.log_error(BillingEvent.CUSTOMER_CREATION_ERROR, "Failed to create Stripe customer", e)
            raise BillingError("customer_creation_failed") from e

        try:
            profiles.update_profile(user_id, {"stripe_customer_id": customer_id})
        except Exception as e:
            logger.log_error(BillingEvent.DATABASE_UPDATE_FAILED, "Failed to save customer ID to database", e)
            raise BillingError("customer_id_save_failed") from e

    params: Dict[str, Any] = {
        "mode": "subscription",
        "customer": customer_id,
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url,
        "cancel_url": cancel_url,
        # Helps us map webhooks back to users.
        "client_reference_id": user_id,
        "metadata": {"userId": user_id},
    }

    try:
        session = stripe.checkout.Session.create(**params)
    except Exception as e:
        logger.log_error(BillingEvent.CHECKOUT_SESSION_FAILED, "Failed to create checkout session", e)
        raise BillingError("checkout_session_failed") from e

    url = session.get("url")
    if not url:
        raise BillingError("stripe_session_url_missing")

    logger.log(
        BillingEvent.CHECKOUT_SESSION_CREATED,
        "Checkout session created successfully",
        metadata={"session_id": session.get("id"), "customer_id": customer_id, "user_id": user_id},
    )
    return str(url)


def create_billing_portal_session(
    cfg: Config,
    logger: AuthLogger,
    *,
    customer_id: str,
    return_url: str,
) -> str:
    customer_id = _require(customer_id, "customer_id")
    return_url = _require(return_url, "return_url")

    stripe = _get_stripe(cfg)
    try:
        session = stripe.billing_portal.Session.create(customer=customer_id, return_url=return_url)
    except Exception as e:
        logger.log_error(BillingEvent.PORTAL_SESSION_FAILED, "Failed to create portal session", e)
        raise BillingError("portal_session_failed") from e

    url = session.get("url")
    if not url:
        raise BillingError("stripe_portal_url_missing")

    logger.log(
        BillingEvent.PORTAL_SESSION_CREATED,
        "Portal session created successfully",
        metadata={"session_id": session.get("id"), "customer_id": customer_id},
    )
    return str(url)


def validate_webhook_signature(
    cfg: Config,
    logger: AuthLogger,
    *,
    payload_bytes: bytes,
    signature: Optional[str],
) -> Dict[str, Any]:
    """Verify a Stripe webhook and return the event.

    Only authenticity is checked here; what to do with the event is up to
    the caller.
    """
    if not payload_bytes or not payload_bytes.strip():
        raise BillingError("webhook_payload_missing")
    signature = _require(signature, "stripe_signature")

    stripe = _get_stripe(cfg)
    try:
        event = stripe.Webhook.construct_event(payload_bytes, signature, cfg.STRIPE_WEBHOOK_SECRET)
    except Exception as e:
        logger.log_error(BillingEvent.WEBHOOK_VERIFICATION_FAILED, "Webhook signature validation failed", e)
        raise BillingError("webhook_signature_invalid") from e

    logger.log(
        BillingEvent.WEBHOOK_VALIDATED,
        "Webhook signature validated successfully",
        metadata={"event_id": event.get("id"), "event_type": event.get("type")},
    )
    return event
