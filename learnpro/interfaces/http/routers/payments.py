import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ....application.use_cases.cancel_subscription import CancelSubscription
from ....application.use_cases.handle_payment_event import HandlePaymentEvent
from ....config import settings
from ....domain.tiers import DEFAULT_TIER
from ....infrastructure.db import get_db
from ....infrastructure.models import Subscriber, UserORM
from ....infrastructure.payments import construct_event
from ....infrastructure.repositories import SubscriberRepository
from ..authz import get_current_user
from ..schemas import SubscriptionCancelReq, SubscriptionResp

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


def _subscription_out(db: Session, user_id: int, active: Subscriber | None) -> SubscriptionResp:
    if active is None:
        return SubscriptionResp(subscribed=False, tier=DEFAULT_TIER)
    return SubscriptionResp(
        subscribed=True,
        tier=SubscriberRepository(db).effective_tier(user_id),
        subscription_end=active.subscription_end,
        cancel_at_period_end=active.cancel_at_period_end,
    )


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    # the signature covers the raw body, so it is read before any parsing
    payload = await request.body()
    event = construct_event(
        payload,
        request.headers.get("stripe-signature"),
        settings.STRIPE_WEBHOOK_SECRET,
        tolerance=settings.STRIPE_WEBHOOK_TOLERANCE,
    )
    logger.info("webhook_received", event_type=event["type"], event_id=event.get("id"))
    handler = HandlePaymentEvent(db, settings.STRIPE_PRICE_TIERS, settings.DEFAULT_PAID_TIER)
    await run_in_threadpool(handler.execute, event)
    return {"received": True}

@router.get("/subscription", response_model=SubscriptionResp)
def my_subscription(user: UserORM = Depends(get_current_user), db: Session = Depends(get_db)):
    return _subscription_out(db, user.id, SubscriberRepository(db).active_for_user(user.id))

@router.post("/subscription/cancel", response_model=SubscriptionResp)
def cancel_subscription(payload: SubscriptionCancelReq | None = None,
                        user: UserORM = Depends(get_current_user),
                        db: Session = Depends(get_db)):
    payload = payload or SubscriptionCancelReq()
    subscriber = CancelSubscription(db).execute(user.id, payload.reason, payload.feedback)
    return _subscription_out(db, user.id, subscriber)
