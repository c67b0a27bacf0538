from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...domain.progress import as_utc
from ...infrastructure.models import (
    Certificate,
    Enrollment,
    ExamAttempt,
    Lesson,
    LessonProgress,
    Notification,
    utcnow,
)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


class BuildDashboard:
    """Learner dashboard: summary numbers plus per-course detail."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: int, now: datetime | None = None) -> dict:
        now = now or utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        enrollments = (self.db.query(Enrollment)
                       .filter(Enrollment.user_id == user_id)
                       .order_by(Enrollment.enrolled_at.desc())
                       .all())
        course_ids = [e.course_id for e in enrollments]

        progress_rows = []
        lesson_totals: dict[int, int] = {}
        if course_ids:
            progress_rows = (self.db.query(LessonProgress)
                             .filter(LessonProgress.user_id == user_id,
                                     LessonProgress.course_id.in_(course_ids))
                             .all())
            lesson_totals = dict(
                self.db.query(Lesson.course_id, func.count(Lesson.id))
                .filter(Lesson.course_id.in_(course_ids))
                .group_by(Lesson.course_id)
                .all()
            )

        certificates = (self.db.query(Certificate)
                        .filter(Certificate.user_id == user_id)
                        .order_by(Certificate.issued_at.desc())
                        .all())
        attempts = (self.db.query(ExamAttempt)
                    .filter(ExamAttempt.user_id == user_id)
                    .order_by(ExamAttempt.completed_at.desc())
                    .limit(5)
                    .all())
        notifications = (self.db.query(Notification)
                         .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
                         .order_by(Notification.created_at.desc())
                         .limit(5)
                         .all())

        total_courses = len(enrollments)
        completed_courses = sum(1 for e in enrollments if e.completed_at)
        study_hours = sum(e.course.duration_hours or 0 for e in enrollments)
        overall = (sum(e.progress_percentage or 0 for e in enrollments) / total_courses) if total_courses else 0
        monthly_completed = sum(
            1 for p in progress_rows
            if p.is_completed and p.completed_at and as_utc(p.completed_at) >= month_start
        )

        course_progress = []
        for enrollment in enrollments:
            rows = [p for p in progress_rows if p.course_id == enrollment.course_id]
            last = max((as_utc(p.updated_at) for p in rows if p.updated_at), default=None)
            instructor = enrollment.course.instructor
            course_progress.append({
                "course_id": enrollment.course_id,
                "course_name": enrollment.course.title,
                "thumbnail": enrollment.course.thumbnail_url,
                "instructor": instructor.full_name if instructor else None,
                "progress": enrollment.progress_percentage or 0,
                "completed_lessons": sum(1 for p in rows if p.is_completed),
                "total_lessons": lesson_totals.get(enrollment.course_id, 0),
                "enrolled_at": _iso(enrollment.enrolled_at),
                "completed_at": _iso(enrollment.completed_at),
                "last_activity": _iso(last),
            })

        return {
            "summary": {
                "total_courses": total_courses,
                "completed_courses": completed_courses,
                "total_certificates": len(certificates),
                "total_study_hours": round(study_hours),
                "overall_progress": round(overall),
                "monthly_lessons_completed": monthly_completed,
            },
            "course_progress": course_progress,
            "certificates": [
                {
                    "id": c.id,
                    "course_name": c.course.title,
                    "certificate_number": c.certificate_number,
                    "issued_at": _iso(c.issued_at),
                    "score": c.score,
                }
                for c in certificates
            ],
            "recent_exams": [
                {
                    "id": a.id,
                    "exam_title": a.exam.title,
                    "course_name": a.exam.course.title,
                    "score": a.score,
                    "max_score": a.max_score,
                    "percentage": a.percentage,
                    "passed": a.passed,
                    "completed_at": _iso(a.completed_at),
                }
                for a in attempts
            ],
            "recent_notifications": [
                {"id": n.id, "title": n.title, "message": n.message, "type": n.type,
                 "action_url": n.action_url, "created_at": _iso(n.created_at)}
                for n in notifications
            ],
        }
