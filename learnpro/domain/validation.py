"""Course content validation rules and scoring."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

LEVELS = ("basic", "comprehensive", "publish_ready")

ISSUE_PENALTY = {"critical": 25, "high": 15, "medium": 10, "low": 5}
WARNING_PENALTY = {"high": 5, "medium": 3, "low": 1}
PUBLISH_THRESHOLD = 80


@dataclass
class Finding:
    type: str
    category: str
    description: str
    location: str
    severity: str
    auto_fixable: bool = False


@dataclass
class ValidationReport:
    issues: list[Finding] = field(default_factory=list)
    warnings: list[Finding] = field(default_factory=list)
    suggestions: list[Finding] = field(default_factory=list)

    def issue(self, category, description, location, severity, auto_fixable=False):
        self.issues.append(Finding("error", category, description, location, severity, auto_fixable))

    def warn(self, category, description, location, severity, auto_fixable=False):
        self.warnings.append(Finding("warning", category, description, location, severity, auto_fixable))

    def suggest(self, category, description, location, severity="low", auto_fixable=False):
        self.suggestions.append(Finding("suggestion", category, description, location, severity, auto_fixable))

    @property
    def score(self) -> int:
        return calculate_validation_score(self.issues, self.warnings)

    @property
    def valid(self) -> bool:
        return not self.issues

    @property
    def ready_for_publish(self) -> bool:
        return not self.issues and self.score >= PUBLISH_THRESHOLD

    def fixable(self) -> list[Finding]:
        return [f for f in self.issues + self.warnings + self.suggestions if f.auto_fixable]

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "score": self.score,
            "issues": [asdict(f) for f in self.issues],
            "warnings": [asdict(f) for f in self.warnings],
            "suggestions": [asdict(f) for f in self.suggestions],
            "ready_for_publish": self.ready_for_publish,
        }


def calculate_validation_score(issues: Sequence[Finding], warnings: Sequence[Finding]) -> int:
    score = 100
    for finding in issues:
        score -= ISSUE_PENALTY.get(finding.severity, 0)
    for finding in warnings:
        score -= WARNING_PENALTY.get(finding.severity, 0)
    return max(0, score)


def _blank(value: str | None, min_length: int) -> bool:
    return not value or len(value.strip()) < min_length


def _check_basic(course, lessons, report: ValidationReport) -> None:
    if _blank(course.title, 3):
        report.issue("metadata", "Course title must be at least 3 characters", "course.title", "critical")
    if _blank(course.description, 50):
        report.issue(
            "metadata", "Course description must be at least 50 characters", "course.description", "high"
        )
    if not course.thumbnail_url:
        report.warn("metadata", "Adding a cover image is recommended", "course.thumbnail_url", "medium")

    if not lessons:
        report.issue("content", "Course must have at least one lesson", "lessons", "critical")
    else:
        for index, lesson in enumerate(lessons):
            if _blank(lesson.title, 3):
                report.issue(
                    "content", f"Lesson {index + 1} needs a valid title", f"lessons[{index}].title", "high"
                )
            if not lesson.content_url and not lesson.video_url and not lesson.content:
                report.issue(
                    "content",
                    f'Lesson "{lesson.title}" has no content (video, material or text)',
                    f"lessons[{index}].content",
                    "high",
                )
            if not lesson.duration_minutes:
                report.warn(
                    "content",
                    f'Lesson "{lesson.title}" has no duration',
                    f"lessons[{index}].duration",
                    "medium",
                    auto_fixable=True,
                )

        order = sorted(lesson.order_index for lesson in lessons)
        if order != list(range(len(lessons))):
            report.warn(
                "structure",
                "Lesson order is not sequential",
                "lessons.order_index",
                "medium",
                auto_fixable=True,
            )

    if not course.category_id:
        report.warn("metadata", "Assigning a category is recommended", "course.category_id", "medium")

    if course.price is not None and course.price < 0:
        report.issue("metadata", "Course price cannot be negative", "course.price", "high", auto_fixable=True)


def _check_comprehensive(course, lessons, exams, report: ValidationReport) -> None:
    if course.title and len(course.title) > 60:
        report.suggest("seo", "Title is longer than 60 characters", "course.title")
    if course.description and len(course.description) > 160:
        report.suggest("seo", "Description is longer than 160 characters", "course.description")

    total_minutes = sum(lesson.duration_minutes or 0 for lesson in lessons)
    if total_minutes < 30:
        report.warn("content", "Course is shorter than 30 minutes in total", "course.duration", "medium")
    if total_minutes > 600:
        report.suggest("content", "Course is very long, consider splitting it into modules", "course.duration")

    if course.has_final_exam and exams:
        exam = exams[0]
        if len(exam.questions or []) < 5:
            report.warn("content", "Final exam should have at least 5 questions", "exam.questions", "medium")
        if exam.passing_score < 60:
            report.suggest(
                "content", "A passing score of at least 60% is recommended", "exam.passing_score",
                auto_fixable=True,
            )

    for index, lesson in enumerate(lessons):
        if lesson.video_url and not lesson.description:
            report.suggest(
                "accessibility",
                f'Add a description to lesson "{lesson.title}"',
                f"lessons[{index}].description",
            )


def _check_publish_ready(course, lessons, report: ValidationReport) -> None:
    for index, lesson in enumerate(lessons):
        if not lesson.video_url and not lesson.content_url and not lesson.content:
            report.issue(
                "content",
                f'Lesson "{lesson.title}" needs content before publishing',
                f"lessons[{index}].content",
                "critical",
            )
    if not course.thumbnail_url:
        report.issue("metadata", "A cover image is required to publish", "course.thumbnail_url", "critical")
    if not course.level:
        report.issue(
            "metadata",
            "Course level must be set (beginner, intermediate, advanced)",
            "course.level",
            "high",
            auto_fixable=True,
        )
    if not course.duration_hours:
        report.warn(
            "metadata", "Total course duration is not calculated", "course.duration_hours", "medium",
            auto_fixable=True,
        )


def validate_course(course, lessons: Sequence, exams: Sequence = (), level: str = "basic") -> ValidationReport:
    if level not in LEVELS:
        raise ValueError(f"Unknown validation level: {level}")
    report = ValidationReport()
    _check_basic(course, lessons, report)
    if level in ("comprehensive", "publish_ready"):
        _check_comprehensive(course, lessons, exams, report)
    if level == "publish_ready":
        _check_publish_ready(course, lessons, report)
    return report
