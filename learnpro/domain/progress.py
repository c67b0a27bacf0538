"""Course progress arithmetic.

Enrollment progress is the share of a course's lessons the learner has
completed, as a whole percentage in [0, 100].
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

COMPLETE = 100


def compute_progress_percentage(completed_lessons: int, total_lessons: int) -> int:
    """Return ``round(completed / total * 100)`` clamped to [0, 100].

    Rounds half up (1/8 -> 13, not banker's 12). A course without lessons
    reports 0.
    """
    if total_lessons <= 0:
        return 0
    completed = min(max(completed_lessons, 0), total_lessons)
    ratio = Decimal(completed) * 100 / Decimal(total_lessons)
    percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(max(percentage, 0), COMPLETE)


def is_course_complete(percentage: int) -> bool:
    return percentage >= COMPLETE


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
