from datetime import datetime

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...infrastructure.models import Course, Reminder, UserORM, utcnow
from ...infrastructure.repositories import NotificationRepository
from ..dto import ReminderBatchResult
from ..errors import LearnProError

logger = structlog.get_logger(__name__)


class ProcessReminders:
    """Send every due reminder once; failures are reported per reminder."""

    def __init__(self, db: Session, mailer):
        self.db = db
        self.mailer = mailer

    def pending(self, now: datetime) -> list[Reminder]:
        return (self.db.query(Reminder)
                .filter(Reminder.is_sent.is_(False), Reminder.scheduled_for <= now)
                .order_by(Reminder.scheduled_for, Reminder.id)
                .all())

    def _mark_sent(self, reminder: Reminder, now: datetime) -> None:
        reminder.is_sent = True
        reminder.sent_at = now

    def _process_one(self, reminder: Reminder, now: datetime) -> bool:
        """Return True when the reminder was delivered, False when skipped."""
        user = self.db.get(UserORM, reminder.user_id)
        if user is None or not user.email:
            raise LearnProError(f"No email found for user {reminder.user_id}")

        prefs = user.preferences
        if prefs is not None and (not prefs.course_reminders or not prefs.email_notifications):
            logger.info("reminder_opted_out", reminder_id=reminder.id, user_id=user.id)
            self._mark_sent(reminder, now)
            self.db.commit()
            return False

        course_title = None
        if reminder.course_id:
            course = self.db.get(Course, reminder.course_id)
            course_title = course.title if course else None

        self.mailer.send_reminder(
            user.email, user.full_name, reminder.title, reminder.message,
            course_id=reminder.course_id, course_title=course_title,
        )
        self._mark_sent(reminder, now)
        NotificationRepository(self.db).add(
            user.id,
            title=reminder.title,
            message=reminder.message,
            type=reminder.reminder_type,
            action_url=f"/courses/{reminder.course_id}" if reminder.course_id else None,
        )
        self.db.commit()
        return True

    def _record_failure(self, result: ReminderBatchResult, reminder_id: int, error: str) -> None:
        self.db.rollback()
        logger.warning("reminder_failed", reminder_id=reminder_id, error=error)
        result.errors.append({"reminder_id": reminder_id, "error": error})

    def execute(self, now: datetime | None = None) -> ReminderBatchResult:
        now = now or utcnow()
        reminders = self.pending(now)
        result = ReminderBatchResult(total=len(reminders))
        for reminder in reminders:
            reminder_id = reminder.id
            try:
                if self._process_one(reminder, now):
                    result.processed += 1
                else:
                    result.skipped += 1
            except LearnProError as exc:
                self._record_failure(result, reminder_id, exc.message)
            except SQLAlchemyError as exc:
                self._record_failure(result, reminder_id, f"Database error: {exc.__class__.__name__}")
            except Exception as exc:
                logger.exception("reminder_crashed", reminder_id=reminder_id)
                self._record_failure(result, reminder_id, str(exc) or exc.__class__.__name__)
        logger.info("reminders_processed", processed=result.processed, skipped=result.skipped,
                    total=result.total, failed=len(result.errors))
        return result
