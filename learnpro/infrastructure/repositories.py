from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Notification, Subscriber, UserORM, UserPreferences, utcnow
from ..application.use_cases.register_user import IUserRepository
from ..config import settings
from ..domain.entities import User
from ..domain.progress import as_utc
from ..domain.tiers import DEFAULT_TIER, normalize_tier


def to_domain(u: UserORM) -> User:
    return User(id=u.id, email=u.email, role=u.role, full_name=u.full_name)


class UserRepository(IUserRepository):
    def __init__(self, db: Session): self.db = db

    def get_by_email(self, email: str) -> User | None:
        row = self.db.query(UserORM).filter(func.lower(UserORM.email) == email.lower()).first()
        return to_domain(row) if row else None

    def create(self, email: str, password_hash: str, role: str = "student",
               full_name: str | None = None) -> User:
        row = UserORM(email=email.lower(), password_hash=password_hash, role=role, full_name=full_name)
        row.preferences = UserPreferences()
        self.db.add(row); self.db.commit(); self.db.refresh(row)
        return to_domain(row)


class NotificationRepository:
    def __init__(self, db: Session): self.db = db

    def add(self, user_id: int, title: str, message: str, type: str = "info",
            action_url: str | None = None, extra: dict | None = None,
            expires_at: datetime | None = None) -> Notification:
        """Stage a notification on the current session; the caller commits."""
        row = Notification(user_id=user_id, title=title, message=message, type=type,
                           action_url=action_url, extra=extra, expires_at=expires_at)
        self.db.add(row)
        return row

    def create(self, *args, **kwargs) -> Notification:
        row = self.add(*args, **kwargs)
        self.db.commit(); self.db.refresh(row)
        return row


class SubscriberRepository:
    def __init__(self, db: Session): self.db = db

    def get_by_customer(self, customer_id: str) -> Subscriber | None:
        return self.db.query(Subscriber).filter(Subscriber.stripe_customer_id == customer_id).first()

    def active_for_user(self, user_id: int, now: datetime | None = None) -> Subscriber | None:
        now = now or utcnow()
        rows = (self.db.query(Subscriber)
                .filter(Subscriber.user_id == user_id, Subscriber.subscribed.is_(True))
                .all())
        for row in rows:
            end = as_utc(row.subscription_end)
            if end is not None and end > now:
                return row
        return None

    def effective_tier(self, user_id: int, now: datetime | None = None) -> str:
        row = self.active_for_user(user_id, now)
        if row is None:
            return DEFAULT_TIER
        return normalize_tier(row.subscription_tier) or settings.DEFAULT_PAID_TIER
