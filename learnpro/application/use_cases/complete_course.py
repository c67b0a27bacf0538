from datetime import datetime

import structlog
from sqlalchemy.orm import Session

from ...domain.progress import is_course_complete
from ...infrastructure.models import Course, Enrollment, Exam, ExamAttempt
from ..errors import NotFoundError, ValidationError
from .update_lesson_progress import mark_course_completed, recompute_course_progress

logger = structlog.get_logger(__name__)


def has_passed_course_exam(db: Session, user_id: int, course_id: int) -> bool:
    return (db.query(ExamAttempt.id)
            .join(Exam, Exam.id == ExamAttempt.exam_id)
            .filter(ExamAttempt.user_id == user_id,
                    Exam.course_id == course_id,
                    ExamAttempt.passed.is_(True))
            .first()) is not None


class CompleteCourse:
    """Close out an enrollment once every lesson (and the exam, if required) is done.

    Completing twice is a no-op: the original ``completed_at`` is kept.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: int, course_id: int, now: datetime | None = None) -> tuple[Enrollment, bool]:
        enrollment = (self.db.query(Enrollment)
                      .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
                      .first())
        if enrollment is None:
            raise NotFoundError("Course enrollment", course_id)
        if enrollment.completed_at is not None:
            return enrollment, False

        course = self.db.get(Course, course_id)
        percentage = recompute_course_progress(self.db, user_id, course_id)
        enrollment.progress_percentage = percentage
        if not is_course_complete(percentage):
            self.db.commit()
            raise ValidationError("All lessons must be completed before finishing the course")
        if course.exam_required_for_completion and not has_passed_course_exam(self.db, user_id, course_id):
            self.db.commit()
            raise ValidationError("A passed final exam is required to complete this course")

        mark_course_completed(self.db, enrollment, course, now)
        self.db.commit()
        self.db.refresh(enrollment)
        logger.info("course_completed", user_id=user_id, course_id=course_id)
        return enrollment, True
