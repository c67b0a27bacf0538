from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field, model_validator

Role = Literal["student", "instructor", "admin"]
Level = Literal["beginner", "intermediate", "advanced"]
ContentType = Literal["video", "text", "pdf", "quiz"]
QuestionType = Literal["single_choice", "true_false", "multiple_select", "short_text"]


# --- auth / profiles

class RegisterReq(BaseModel):
    email: EmailStr
    password: str
    full_name: str | None = None

class LoginReq(BaseModel):
    email: EmailStr
    password: str

class UserResp(BaseModel):
    id: int
    email: EmailStr
    role: str
    full_name: str | None = None
    is_active: bool = True
    class Config: from_attributes = True

class TokenResp(BaseModel):
    access_token: str
    token_type: str = "bearer"

class ProfileUpdate(BaseModel):
    full_name: str | None = Field(None, max_length=255)

class PreferencesOut(BaseModel):
    email_notifications: bool = True
    course_reminders: bool = True
    class Config: from_attributes = True

class PreferencesUpdate(BaseModel):
    email_notifications: bool | None = None
    course_reminders: bool | None = None


# --- admin

class RoleUpdate(BaseModel):
    role: Role

class StatusUpdate(BaseModel):
    is_active: bool

class StatsResp(BaseModel):
    total_users: int
    total_courses: int
    published_courses: int
    total_enrollments: int
    completed_enrollments: int
    certificates_issued: int
    total_revenue: float


# --- categories

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str | None = None

class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=120)
    description: str | None = None

class CategoryOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    course_count: int = 0
    class Config: from_attributes = True


# --- courses and lessons

class CourseCreate(BaseModel):
    title: str
    description: str | None = None
    level: Level | None = None
    category_id: int | None = None
    instructor_id: int | None = None
    price: float = 0.0
    subscription_tier: str = "free"
    is_published: bool = False
    thumbnail_url: str | None = None
    duration_hours: int | None = None
    has_final_exam: bool = False
    exam_required_for_completion: bool = False

class CourseUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    level: Level | None = None
    category_id: int | None = None
    price: float | None = None
    subscription_tier: str | None = None
    is_published: bool | None = None
    thumbnail_url: str | None = None
    duration_hours: int | None = None
    has_final_exam: bool | None = None
    exam_required_for_completion: bool | None = None

class CourseOut(BaseModel):
    id: int
    title: str
    description: str | None = None
    level: str | None = None
    category_id: int | None = None
    instructor_id: int | None = None
    price: float = 0.0
    subscription_tier: str = "free"
    is_published: bool = False
    thumbnail_url: str | None = None
    duration_hours: int | None = None
    has_final_exam: bool = False
    exam_required_for_completion: bool = False
    class Config: from_attributes = True

class LessonCreate(BaseModel):
    title: str
    description: str | None = None
    content_type: ContentType = "video"
    content: str | None = None
    video_url: str | None = None
    content_url: str | None = None
    duration_minutes: int | None = Field(None, ge=0)
    order_index: int = Field(0, ge=0)
    is_preview: bool = False

class LessonUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    content_type: ContentType | None = None
    content: str | None = None
    video_url: str | None = None
    content_url: str | None = None
    duration_minutes: int | None = Field(None, ge=0)
    order_index: int | None = Field(None, ge=0)
    is_preview: bool | None = None

class LessonOut(BaseModel):
    id: int
    course_id: int
    title: str
    description: str | None = None
    content_type: str = "video"
    content: str | None = None
    video_url: str | None = None
    content_url: str | None = None
    duration_minutes: int | None = None
    order_index: int = 0
    is_preview: bool = False
    class Config: from_attributes = True


# --- exams

class QuestionCreate(BaseModel):
    question: str
    question_type: QuestionType = "single_choice"
    options: list[str] | None = None
    correct_answer: Any
    points: int = Field(1, ge=0)
    order_index: int = Field(0, ge=0)

class ExamCreate(BaseModel):
    title: str
    description: str | None = None
    passing_score: int = Field(70, ge=0, le=100)
    time_limit_minutes: int | None = Field(None, ge=1)
    max_attempts: int | None = Field(None, ge=1)
    questions: list[QuestionCreate] = []

class QuestionOut(BaseModel):
    id: int
    question: str
    question_type: str
    options: list[str] | None = None
    points: int
    order_index: int
    correct_answer: Any = None
    class Config: from_attributes = True

class ExamOut(BaseModel):
    id: int
    course_id: int
    title: str
    description: str | None = None
    passing_score: int
    time_limit_minutes: int | None = None
    max_attempts: int | None = None
    questions: list[QuestionOut] = []
    class Config: from_attributes = True

class AttemptCreate(BaseModel):
    answers: dict[int, Any]
    time_taken_seconds: int | None = Field(None, ge=0)

class AttemptOut(BaseModel):
    id: int
    exam_id: int
    score: int
    max_score: int
    percentage: int
    passed: bool
    time_taken_seconds: int | None = None
    completed_at: datetime
    answers: list[dict] | None = None
    class Config: from_attributes = True

class AttemptResp(BaseModel):
    attempt: AttemptOut
    certificate_number: str | None = None


# --- enrollment and progress

class EnrollmentOut(BaseModel):
    id: int
    user_id: int
    course_id: int
    progress_percentage: int
    enrolled_at: datetime
    completed_at: datetime | None = None
    class Config: from_attributes = True

class EnrollResp(BaseModel):
    enrollment: EnrollmentOut
    already_enrolled: bool = False

class LessonProgressUpdate(BaseModel):
    completed: bool = True
    watch_time_seconds: int = Field(0, ge=0)

class LessonProgressOut(BaseModel):
    id: int
    lesson_id: int
    course_id: int
    is_completed: bool
    watch_time_seconds: int
    completed_at: datetime | None = None
    class Config: from_attributes = True

class ProgressUpdateResp(BaseModel):
    progress: LessonProgressOut
    course_progress_percentage: int
    course_completed: bool
    completed_at: datetime | None = None

class MyProgressItem(BaseModel):
    course_id: int
    course_title: str
    progress_percentage: int
    enrolled_at: datetime
    completed_at: datetime | None = None


# --- certificates

class CertificateGenerateReq(BaseModel):
    course_id: int | None = None
    exam_attempt_id: int | None = None

    @model_validator(mode="after")
    def one_source(self):
        if self.course_id is None and self.exam_attempt_id is None:
            raise ValueError("course_id or exam_attempt_id is required")
        return self

class CertificateRegenerateReq(BaseModel):
    course_id: int

class CertificateOut(BaseModel):
    id: int
    course_id: int
    certificate_number: str
    exam_attempt_id: int | None = None
    score: int | None = None
    issued_at: datetime
    class Config: from_attributes = True

class CertificateResp(BaseModel):
    certificate: CertificateOut
    already_exists: bool = False

class CertificateVerifyResp(BaseModel):
    valid: bool
    certificate_number: str
    student_name: str | None = None
    course_title: str | None = None
    issued_at: datetime | None = None


# --- notifications and reminders

class NotificationOut(BaseModel):
    id: int
    title: str
    message: str
    type: str
    action_url: str | None = None
    metadata: dict | None = Field(None, validation_alias="extra")
    is_read: bool
    created_at: datetime
    expires_at: datetime | None = None
    class Config: from_attributes = True

class NotificationList(BaseModel):
    notifications: list[NotificationOut]
    unread_count: int

class NotificationUpdate(BaseModel):
    is_read: bool = True

class NotificationSend(BaseModel):
    user_id: int
    title: str
    message: str
    type: str = "info"
    action_url: str | None = None
    expires_at: datetime | None = None
    send_email: bool = False

class ReminderCreate(BaseModel):
    user_id: int
    course_id: int | None = None
    title: str
    message: str
    reminder_type: str = "reminder"
    scheduled_for: datetime

class ReminderOut(BaseModel):
    id: int
    user_id: int
    course_id: int | None = None
    title: str
    message: str
    reminder_type: str
    scheduled_for: datetime
    is_sent: bool
    sent_at: datetime | None = None
    class Config: from_attributes = True

class ReminderBatchResp(BaseModel):
    processed: int
    skipped: int
    total: int
    errors: list[dict]


# --- validation and payments

class ValidationReq(BaseModel):
    action: Literal["validate", "auto_fix", "publish_check"] = "validate"
    level: Literal["basic", "comprehensive", "publish_ready"] = "basic"

class SubscriptionResp(BaseModel):
    subscribed: bool
    tier: str
    subscription_end: datetime | None = None
    cancel_at_period_end: bool = False

class SubscriptionCancelReq(BaseModel):
    reason: str | None = Field(None, max_length=500)
    feedback: str | None = Field(None, max_length=2000)
