"""Stripe billing: checkout, customer portal and webhook verification."""

from .stripe_billing import (
    BillingError,
    create_billing_portal_session,
    create_checkout_session,
    validate_webhook_signature,
)

__all__ = [
    "BillingError",
    "create_billing_portal_session",
    "create_checkout_session",
    "validate_webhook_signature",
]
