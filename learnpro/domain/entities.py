from dataclasses import dataclass

ROLES = ("student", "instructor", "admin")
LEVELS = ("beginner", "intermediate", "advanced")
LESSON_TYPES = ("video", "text", "quiz")


@dataclass(frozen=True)
class User:
    id: int | None
    email: str
    role: str = "student"
    full_name: str | None = None
