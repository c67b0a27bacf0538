from datetime import datetime, timedelta

import structlog
from sqlalchemy.orm import Session

from ...domain.progress import as_utc
from ...infrastructure import payments
from ...infrastructure.models import Reminder, Subscriber, utcnow
from ...infrastructure.repositories import NotificationRepository, SubscriberRepository
from ..errors import NotFoundError

logger = structlog.get_logger(__name__)

REMINDER_LEAD = timedelta(days=3)


class CancelSubscription:
    """Stop renewal at the end of the paid period; access is kept until then."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: int, reason: str | None = None, feedback: str | None = None,
                now: datetime | None = None) -> Subscriber:
        now = now or utcnow()
        subscriber = SubscriberRepository(self.db).active_for_user(user_id, now)
        if subscriber is None or not subscriber.stripe_subscription_id:
            raise NotFoundError("Active subscription")
        if subscriber.cancel_at_period_end:
            return subscriber

        payments.cancel_at_period_end(subscriber.stripe_subscription_id, metadata={
            "cancellation_reason": reason or "user_requested",
            "cancellation_feedback": feedback or "",
            "cancelled_by": str(user_id),
            "cancelled_at": now.isoformat(),
        })

        subscriber.cancel_at_period_end = True
        subscriber.updated_at = now
        ends = as_utc(subscriber.subscription_end)
        NotificationRepository(self.db).add(
            user_id,
            title="Subscription cancelled",
            message=f"Your subscription ends on {ends:%B %d, %Y}. You keep full access until then.",
            type="info",
            action_url="/subscription",
        )
        self.db.add(Reminder(
            user_id=user_id,
            title="Your subscription ends soon",
            message="Your subscription ends in 3 days. Renew to keep access to every course.",
            reminder_type="subscription_ending",
            scheduled_for=max(ends - REMINDER_LEAD, now),
        ))
        self.db.commit()
        self.db.refresh(subscriber)
        logger.info("subscription_cancel_requested", user_id=user_id,
                    subscription_id=subscriber.stripe_subscription_id, ends=ends.isoformat())
        return subscriber
