from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class RegisterUserInput:
    email: str
    password: str
    full_name: str | None = None


@dataclass
class ProgressUpdate:
    lesson_id: int
    course_id: int
    progress_percentage: int
    completed_now: bool
    completed_at: datetime | None


@dataclass
class ReminderBatchResult:
    processed: int = 0
    skipped: int = 0
    total: int = 0
    errors: list[dict] = field(default_factory=list)
