from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...domain.grading import ExamGrade, grade_exam
from ...domain.progress import is_course_complete
from ...infrastructure.metrics import exam_attempts_total
from ...infrastructure.models import Certificate, Enrollment, Exam, ExamAttempt, utcnow
from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from .issue_certificate import IssueCertificate
from .update_lesson_progress import mark_course_completed

logger = structlog.get_logger(__name__)


class SubmitExam:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: int, exam_id: int, answers: dict[int, Any],
                time_taken_seconds: int | None = None,
                now: datetime | None = None) -> tuple[ExamAttempt, ExamGrade, Certificate | None]:
        now = now or utcnow()
        exam = self.db.get(Exam, exam_id)
        if exam is None:
            raise NotFoundError("Exam", exam_id)

        enrollment = (self.db.query(Enrollment)
                      .filter(Enrollment.user_id == user_id, Enrollment.course_id == exam.course_id)
                      .first())
        if enrollment is None:
            raise PermissionDeniedError("Enroll in the course to take its exam")

        if exam.max_attempts:
            used = (self.db.query(func.count(ExamAttempt.id))
                    .filter(ExamAttempt.exam_id == exam_id, ExamAttempt.user_id == user_id)
                    .scalar() or 0)
            if used >= exam.max_attempts:
                raise ValidationError("Maximum number of attempts reached")

        if not exam.questions:
            raise ValidationError("Exam has no questions")

        grade = grade_exam(exam.questions, answers, exam.passing_score)
        correct_by_id = {r.question_id: r.correct for r in grade.results}
        attempt = ExamAttempt(
            exam_id=exam_id,
            user_id=user_id,
            answers=[
                {"question_id": q.id, "answer": answers.get(q.id), "correct": correct_by_id[q.id]}
                for q in exam.questions
            ],
            score=grade.score,
            max_score=grade.max_score,
            percentage=grade.percentage,
            passed=grade.passed,
            time_taken_seconds=time_taken_seconds,
            completed_at=now,
        )
        self.db.add(attempt)
        if grade.passed and is_course_complete(enrollment.progress_percentage):
            mark_course_completed(self.db, enrollment, exam.course, now)
        self.db.commit()
        self.db.refresh(attempt)
        exam_attempts_total.labels(passed=str(grade.passed).lower()).inc()
        logger.info("exam_submitted", user_id=user_id, exam_id=exam_id, attempt_id=attempt.id,
                    percentage=grade.percentage, passed=grade.passed)

        certificate = None
        if grade.passed:
            certificate, _ = IssueCertificate(self.db).from_exam_attempt(user_id, attempt.id, now)
        return attempt, grade, certificate
