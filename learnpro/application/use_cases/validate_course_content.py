import math

import structlog
from sqlalchemy.orm import Session

from ...domain.validation import Finding, ValidationReport, validate_course
from ...infrastructure.models import Course, Exam, Lesson
from ..errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

ACTIONS = ("validate", "auto_fix", "publish_check")


class ValidateCourseContent:
    def __init__(self, db: Session):
        self.db = db

    def _load(self, course_id: int):
        course = self.db.get(Course, course_id)
        if course is None:
            raise NotFoundError("Course", course_id)
        lessons = (self.db.query(Lesson)
                   .filter(Lesson.course_id == course_id)
                   .order_by(Lesson.order_index, Lesson.id)
                   .all())
        exams = self.db.query(Exam).filter(Exam.course_id == course_id).order_by(Exam.id).all()
        return course, lessons, exams

    def validate(self, course_id: int, level: str = "basic") -> ValidationReport:
        course, lessons, exams = self._load(course_id)
        try:
            return validate_course(course, lessons, exams, level)
        except ValueError as exc:
            raise ValidationError(str(exc))

    def _apply_fix(self, course: Course, lessons: list[Lesson], exams: list[Exam], finding: Finding) -> bool:
        if finding.location == "course.price":
            course.price = 0
        elif finding.location == "course.level":
            course.level = "beginner"
        elif finding.location == "course.duration_hours":
            total_minutes = sum(lesson.duration_minutes or 0 for lesson in lessons)
            course.duration_hours = math.ceil(total_minutes / 60)
        elif finding.location == "lessons.order_index":
            for index, lesson in enumerate(lessons):
                lesson.order_index = index
        elif finding.location == "exam.passing_score" and exams:
            exams[0].passing_score = 60
        else:
            return False
        return True

    def auto_fix(self, course_id: int, level: str = "publish_ready") -> ValidationReport:
        """Apply every automatic fix, then report at the requested level."""
        course, lessons, exams = self._load(course_id)
        report = validate_course(course, lessons, exams, "publish_ready")
        fixed = 0
        seen = set()
        for finding in report.fixable():
            if finding.location in seen:
                continue
            seen.add(finding.location)
            if self._apply_fix(course, lessons, exams, finding):
                fixed += 1
                logger.info("auto_fix_applied", course_id=course_id, location=finding.location)
        self.db.commit()

        revalidated = self.validate(course_id, level)
        revalidated.suggestions.insert(0, Finding(
            "suggestion", "content", f"Applied {fixed} automatic fixes", "course", "low",
        ))
        logger.info("auto_fix_completed", course_id=course_id, fixed=fixed,
                    remaining_issues=len(revalidated.issues))
        return revalidated

    def execute(self, course_id: int, action: str = "validate", level: str = "basic") -> ValidationReport:
        if action == "validate":
            report = self.validate(course_id, level)
        elif action == "auto_fix":
            report = self.auto_fix(course_id, level)
        elif action == "publish_check":
            report = self.validate(course_id, "publish_ready")
        else:
            raise ValidationError(f"Unknown action: {action}")
        logger.info("course_validated", course_id=course_id, action=action, score=report.score,
                    issues=len(report.issues), ready_for_publish=report.ready_for_publish)
        return report
