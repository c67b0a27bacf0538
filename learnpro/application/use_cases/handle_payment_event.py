"""Apply verified Stripe webhook events to subscribers and payments."""

from datetime import datetime, timezone

import structlog
from sqlalchemy.orm import Session

from ...domain.tiers import normalize_tier
from ...infrastructure.metrics import webhook_events_total
from ...infrastructure.models import Payment, Subscriber, UserORM, WebhookLog, utcnow
from ...infrastructure.repositories import NotificationRepository, SubscriberRepository
from ..errors import ValidationError

logger = structlog.get_logger(__name__)

ACTIVE_STATUSES = ("active", "trialing")


def _cents(value) -> float:
    return round((value or 0) / 100, 2)


def _first_item(subscription: dict) -> dict:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _period_end(subscription: dict) -> datetime | None:
    ts = subscription.get("current_period_end") or _first_item(subscription).get("current_period_end")
    return datetime.fromtimestamp(ts, tz=timezone.utc) if ts else None


def _customer_id(subscription: dict) -> str:
    customer_id = subscription.get("customer")
    if not customer_id:
        raise ValidationError("Subscription event has no customer")
    return customer_id


class HandlePaymentEvent:
    def __init__(self, db: Session, price_tiers: dict[str, str] | None = None,
                 default_tier: str = "premium"):
        self.db = db
        self.subscribers = SubscriberRepository(db)
        self.price_tiers = price_tiers or {}
        self.default_tier = default_tier

    def execute(self, event: dict) -> bool:
        """Dispatch on the event type; returns False for unhandled types."""
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        webhook_events_total.labels(event_type=event_type).inc()
        self.db.add(WebhookLog(webhook_type=event_type, payload=event.get("data")))
        self.db.commit()

        handlers = {
            "customer.subscription.created": self.subscription_changed,
            "customer.subscription.updated": self.subscription_changed,
            "customer.subscription.deleted": self.subscription_cancelled,
            "invoice.payment_succeeded": self.payment_succeeded,
            "invoice.payment_failed": self.payment_failed,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.info("webhook_unhandled", event_type=event_type, event_id=event.get("id"))
            return False
        handler(obj)
        return True

    def _resolve_user_id(self, obj: dict) -> int | None:
        metadata = obj.get("metadata") or {}
        raw = str(metadata.get("user_id") or "")
        if raw.isdigit():
            return int(raw)
        email = metadata.get("email") or obj.get("customer_email")
        if email:
            user = self.db.query(UserORM).filter(UserORM.email == email.lower()).first()
            return user.id if user else None
        return None

    def _tier_for(self, subscription: dict) -> str:
        metadata = subscription.get("metadata") or {}
        tier = normalize_tier(metadata.get("tier"))
        if tier:
            return tier
        price_id = (_first_item(subscription).get("price") or {}).get("id")
        return normalize_tier(self.price_tiers.get(price_id)) or self.default_tier

    def subscription_changed(self, subscription: dict) -> Subscriber:
        customer_id = _customer_id(subscription)
        subscriber = self.subscribers.get_by_customer(customer_id)
        if subscriber is None:
            subscriber = Subscriber(stripe_customer_id=customer_id)
            self.db.add(subscriber)
        if subscriber.user_id is None:
            subscriber.user_id = self._resolve_user_id(subscription)
        metadata = subscription.get("metadata") or {}
        subscriber.email = subscriber.email or metadata.get("email") or subscription.get("customer_email")

        is_active = subscription.get("status") in ACTIVE_STATUSES
        subscriber.subscribed = is_active
        subscriber.subscription_tier = self._tier_for(subscription) if is_active else None
        subscriber.subscription_end = _period_end(subscription) if is_active else None
        if is_active:
            subscriber.stripe_subscription_id = subscription.get("id")
        subscriber.cancel_at_period_end = is_active and bool(subscription.get("cancel_at_period_end"))
        subscriber.updated_at = utcnow()

        if is_active:
            price = _first_item(subscription).get("price") or {}
            self.db.add(Payment(
                user_id=subscriber.user_id,
                amount=_cents(price.get("unit_amount")),
                currency=(subscription.get("currency") or "usd").upper(),
                status="completed",
                payment_provider="stripe",
                provider_payment_id=subscription.get("id"),
                subscription_id=subscription.get("id"),
            ))
        self.db.commit()
        logger.info("subscription_updated", customer_id=customer_id, user_id=subscriber.user_id,
                    active=is_active, tier=subscriber.subscription_tier)
        return subscriber

    def subscription_cancelled(self, subscription: dict) -> Subscriber | None:
        customer_id = _customer_id(subscription)
        subscriber = self.subscribers.get_by_customer(customer_id)
        if subscriber is None:
            logger.warning("subscription_cancel_unknown_customer", customer_id=customer_id)
            return None
        subscriber.subscribed = False
        subscriber.subscription_tier = None
        subscriber.subscription_end = None
        subscriber.cancel_at_period_end = False
        subscriber.updated_at = utcnow()
        self.db.commit()
        logger.info("subscription_cancelled", customer_id=customer_id, user_id=subscriber.user_id)
        return subscriber

    def _user_for_invoice(self, invoice: dict) -> int | None:
        subscriber = self.subscribers.get_by_customer(invoice.get("customer") or "")
        if subscriber is not None and subscriber.user_id is not None:
            return subscriber.user_id
        return self._resolve_user_id(invoice)

    def payment_succeeded(self, invoice: dict) -> Payment | None:
        if invoice.get("subscription"):
            # recorded from the subscription events
            return None
        payment = Payment(
            user_id=self._user_for_invoice(invoice),
            amount=_cents(invoice.get("amount_paid")),
            currency=(invoice.get("currency") or "usd").upper(),
            status="completed",
            payment_provider="stripe",
            provider_payment_id=invoice.get("id"),
        )
        self.db.add(payment)
        self.db.commit()
        logger.info("one_time_payment_recorded", invoice_id=invoice.get("id"), user_id=payment.user_id)
        return payment

    def payment_failed(self, invoice: dict) -> Payment:
        user_id = self._user_for_invoice(invoice)
        payment = Payment(
            user_id=user_id,
            amount=_cents(invoice.get("amount_due")),
            currency=(invoice.get("currency") or "usd").upper(),
            status="failed",
            payment_provider="stripe",
            provider_payment_id=invoice.get("id"),
            subscription_id=invoice.get("subscription"),
        )
        self.db.add(payment)
        if user_id is not None:
            NotificationRepository(self.db).add(
                user_id,
                title="Payment failed",
                message="We could not process your last payment. Please update your payment method.",
                type="error",
                action_url="/dashboard",
                extra={"invoice_id": invoice.get("id")},
            )
        self.db.commit()
        logger.warning("payment_failed", invoice_id=invoice.get("id"), user_id=user_id)
        return payment
