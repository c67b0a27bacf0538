from datetime import datetime

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...domain.progress import compute_progress_percentage, is_course_complete
from ...infrastructure.metrics import courses_completed_total
from ...infrastructure.models import Course, Enrollment, Lesson, LessonProgress, utcnow
from ...infrastructure.repositories import NotificationRepository
from ..dto import ProgressUpdate
from ..errors import NotFoundError, PermissionDeniedError

logger = structlog.get_logger(__name__)


def recompute_course_progress(db: Session, user_id: int, course_id: int) -> int:
    total = db.query(func.count(Lesson.id)).filter(Lesson.course_id == course_id).scalar() or 0
    completed = (db.query(func.count(LessonProgress.id))
                 .join(Lesson, Lesson.id == LessonProgress.lesson_id)
                 .filter(LessonProgress.user_id == user_id,
                         Lesson.course_id == course_id,
                         LessonProgress.is_completed.is_(True))
                 .scalar() or 0)
    return compute_progress_percentage(completed, total)


def mark_course_completed(db: Session, enrollment: Enrollment, course: Course,
                          now: datetime | None = None) -> bool:
    """Set ``completed_at`` if it is not set yet; the caller commits."""
    if enrollment.completed_at is not None:
        return False
    enrollment.completed_at = now or utcnow()
    NotificationRepository(db).add(
        enrollment.user_id,
        title="Course completed!",
        message=f'Congratulations, you finished "{course.title}"',
        type="success",
        action_url=f"/courses/{course.id}",
        extra={"course_id": course.id},
    )
    courses_completed_total.inc()
    return True


def refresh_course_enrollments(db: Session, course: Course) -> int:
    """Recompute stored progress after the course's lesson list changed; the caller commits.

    Returns the number of enrollments whose percentage moved.
    """
    changed = 0
    for enrollment in db.query(Enrollment).filter(Enrollment.course_id == course.id).all():
        percentage = recompute_course_progress(db, enrollment.user_id, course.id)
        if percentage != enrollment.progress_percentage:
            enrollment.progress_percentage = percentage
            changed += 1
        if is_course_complete(percentage) and not course.exam_required_for_completion:
            mark_course_completed(db, enrollment, course)
    if changed:
        logger.info("enrollment_progress_refreshed", course_id=course.id, changed=changed)
    return changed


class UpdateLessonProgress:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: int, lesson_id: int, completed: bool,
                watch_time_seconds: int = 0, now: datetime | None = None) -> tuple[LessonProgress, ProgressUpdate]:
        now = now or utcnow()
        lesson = self.db.get(Lesson, lesson_id)
        if lesson is None:
            raise NotFoundError("Lesson", lesson_id)

        enrollment = (self.db.query(Enrollment)
                      .filter(Enrollment.user_id == user_id, Enrollment.course_id == lesson.course_id)
                      .first())
        if enrollment is None:
            raise PermissionDeniedError("You are not enrolled in this course")

        progress = (self.db.query(LessonProgress)
                    .filter(LessonProgress.user_id == user_id, LessonProgress.lesson_id == lesson_id)
                    .first())
        if progress is None:
            progress = LessonProgress(user_id=user_id, lesson_id=lesson_id, course_id=lesson.course_id,
                                      is_completed=False, watch_time_seconds=0)
            self.db.add(progress)

        progress.watch_time_seconds = max(progress.watch_time_seconds or 0, watch_time_seconds or 0)
        if completed:
            if not progress.is_completed:
                progress.is_completed = True
                progress.completed_at = now
        else:
            progress.is_completed = False
            progress.completed_at = None
        progress.updated_at = now
        self.db.flush()

        percentage = recompute_course_progress(self.db, user_id, lesson.course_id)
        enrollment.progress_percentage = percentage

        completed_now = False
        course = lesson.course
        if is_course_complete(percentage) and not course.exam_required_for_completion:
            completed_now = mark_course_completed(self.db, enrollment, course, now)

        self.db.commit()
        self.db.refresh(progress)
        logger.info("progress_updated", user_id=user_id, lesson_id=lesson_id,
                    course_id=lesson.course_id, progress_percentage=percentage,
                    course_completed=completed_now)
        return progress, ProgressUpdate(
            lesson_id=lesson_id,
            course_id=lesson.course_id,
            progress_percentage=percentage,
            completed_now=completed_now,
            completed_at=enrollment.completed_at,
        )
