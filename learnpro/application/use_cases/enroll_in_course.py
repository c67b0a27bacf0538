from datetime import datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...domain.tiers import can_access, required_tier
from ...infrastructure.metrics import enrollments_created_total
from ...infrastructure.models import Course, Enrollment
from ...infrastructure.repositories import NotificationRepository, SubscriberRepository
from ..errors import NotFoundError, PermissionDeniedError, ValidationError

logger = structlog.get_logger(__name__)


class EnrollInCourse:
    def __init__(self, db: Session):
        self.db = db

    def _existing(self, user_id: int, course_id: int) -> Enrollment | None:
        return (self.db.query(Enrollment)
                .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
                .first())

    def execute(self, user_id: int, course_id: int, now: datetime | None = None) -> tuple[Enrollment, bool]:
        """Enroll the user; returns the enrollment and whether it was created."""
        course = self.db.get(Course, course_id)
        if course is None:
            raise NotFoundError("Course", course_id)
        if not course.is_published:
            raise ValidationError("Course is not available for enrollment")

        user_tier = SubscriberRepository(self.db).effective_tier(user_id, now)
        needed = required_tier(course.subscription_tier, course.price)
        if not can_access(user_tier, needed):
            logger.info("enrollment_rejected", user_id=user_id, course_id=course_id,
                        user_tier=user_tier, required_tier=needed)
            raise PermissionDeniedError("Active subscription required for this course")

        existing = self._existing(user_id, course_id)
        if existing is not None:
            return existing, False

        enrollment = Enrollment(user_id=user_id, course_id=course_id, progress_percentage=0)
        self.db.add(enrollment)
        NotificationRepository(self.db).add(
            user_id,
            title="Enrollment confirmed",
            message=f'You are now enrolled in "{course.title}"',
            type="success",
            action_url=f"/courses/{course_id}",
            extra={"course_id": course_id},
        )
        try:
            self.db.commit()
        except IntegrityError:
            # a concurrent request created the row first
            self.db.rollback()
            existing = self._existing(user_id, course_id)
            if existing is None:
                raise
            return existing, False
        self.db.refresh(enrollment)
        enrollments_created_total.inc()
        logger.info("user_enrolled", user_id=user_id, course_id=course_id, enrollment_id=enrollment.id)
        return enrollment, True
