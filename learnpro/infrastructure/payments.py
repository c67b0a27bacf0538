"""Stripe client: webhook verification and subscription updates."""

import json

import stripe
import structlog

from ..application.errors import UpstreamError, ValidationError
from ..config import settings

logger = structlog.get_logger(__name__)


class SignatureVerificationError(ValidationError):
    pass


def construct_event(payload: bytes, header: str | None, secret: str, tolerance: int = 300) -> dict:
    """Verify the ``Stripe-Signature`` header and return the event as a plain dict."""
    if not secret:
        raise SignatureVerificationError("Missing Stripe webhook configuration")
    if not header:
        raise SignatureVerificationError("No Stripe signature found")
    try:
        stripe.Webhook.construct_event(payload, header, secret, tolerance=tolerance)
    except stripe.SignatureVerificationError as exc:
        raise SignatureVerificationError(f"Invalid Stripe signature: {exc.user_message or exc}")
    except ValueError:
        raise SignatureVerificationError("Webhook payload is not valid JSON")

    # handlers work on the raw JSON, not on StripeObject wrappers
    event = json.loads(payload)
    if not isinstance(event, dict) or "type" not in event:
        raise SignatureVerificationError("Webhook payload is not an event")
    return event


def cancel_at_period_end(subscription_id: str, metadata: dict | None = None) -> None:
    if not settings.STRIPE_SECRET_KEY:
        raise UpstreamError("Payment provider is not configured")
    try:
        stripe.Subscription.modify(
            subscription_id,
            api_key=settings.STRIPE_SECRET_KEY,
            cancel_at_period_end=True,
            metadata=metadata or {},
        )
    except stripe.StripeError as exc:
        logger.warning("stripe_cancel_failed", subscription_id=subscription_id, error=str(exc))
        raise UpstreamError(f"Payment provider error: {exc.user_message or exc}")
