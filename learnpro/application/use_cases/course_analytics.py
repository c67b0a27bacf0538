from sqlalchemy import func
from sqlalchemy.orm import Session

from ...infrastructure.models import Certificate, Course, Enrollment, Exam, ExamAttempt, Lesson, LessonProgress
from ..errors import NotFoundError


def rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


class CourseAnalytics:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, course_id: int) -> dict:
        course = self.db.get(Course, course_id)
        if course is None:
            raise NotFoundError("Course", course_id)

        enrollments = self.db.query(Enrollment).filter(Enrollment.course_id == course_id).all()
        total = len(enrollments)
        completed = sum(1 for e in enrollments if e.completed_at)
        average_progress = round(sum(e.progress_percentage or 0 for e in enrollments) / total, 1) if total else 0.0

        attempts = (self.db.query(ExamAttempt)
                    .join(Exam, Exam.id == ExamAttempt.exam_id)
                    .filter(Exam.course_id == course_id)
                    .all())
        passed = sum(1 for a in attempts if a.passed)
        average_score = round(sum(a.percentage for a in attempts) / len(attempts), 1) if attempts else 0.0

        certificates = (self.db.query(func.count(Certificate.id))
                        .filter(Certificate.course_id == course_id)
                        .scalar() or 0)

        lesson_rows = (self.db.query(Lesson.id, Lesson.title, func.count(LessonProgress.id))
                       .outerjoin(LessonProgress,
                                  (LessonProgress.lesson_id == Lesson.id) & LessonProgress.is_completed.is_(True))
                       .filter(Lesson.course_id == course_id)
                       .group_by(Lesson.id, Lesson.title, Lesson.order_index)
                       .order_by(Lesson.order_index)
                       .all())

        return {
            "course_id": course.id,
            "title": course.title,
            "total_enrollments": total,
            "completed_enrollments": completed,
            "completion_rate": rate(completed, total),
            "average_progress": average_progress,
            "exam_attempts": len(attempts),
            "exam_pass_rate": rate(passed, len(attempts)),
            "average_exam_score": average_score,
            "certificates_issued": certificates,
            "lessons": [
                {"lesson_id": lid, "title": title, "completions": count,
                 "completion_rate": rate(count, total)}
                for lid, title, count in lesson_rows
            ],
        }
