import structlog
from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ....application.use_cases.update_lesson_progress import refresh_course_enrollments
from ....domain.grading import QUESTION_TYPES
from ....domain.tiers import TIER_ORDER, normalize_tier
from ....infrastructure.db import get_db
from ....infrastructure.models import Category, Course, Enrollment, Exam, ExamQuestion, Lesson, UserORM
from ....infrastructure import cache
from ....infrastructure.metrics import cache_hits_total, cache_misses_total, db_queries_total
from ..schemas import (
    CourseOut, CourseCreate, CourseUpdate, LessonCreate, LessonUpdate, LessonOut, ExamCreate, ExamOut,
)
from ..authz import can_manage, ensure_can_manage, get_current_user, get_optional_user, require_author

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/courses", tags=["courses"])


def _course_or_404(db: Session, course_id: int) -> Course:
    row = db.get(Course, course_id)
    if not row: raise HTTPException(404, "Course not found")
    return row

def _visible_course(db: Session, course_id: int, user: UserORM | None) -> Course:
    row = _course_or_404(db, course_id)
    if not row.is_published and not (user and can_manage(row, user)):
        raise HTTPException(404, "Course not found")
    return row

def _invalidate(course_id: int | None = None):
    if course_id is None:
        cache.invalidate_catalogue()
    else:
        cache.invalidate_course(course_id)

def _check_tier(tier: str) -> str:
    normalized = normalize_tier(tier)
    if normalized not in TIER_ORDER:
        raise HTTPException(400, f"Unknown subscription tier: {tier}")
    return normalized

@router.get("", response_model=list[CourseOut])
def list_courses(db: Session = Depends(get_db),
                 category_id: int | None = None,
                 level: str | None = None,
                 tier: str | None = None,
                 search: str | None = Query(None, max_length=100),
                 limit: int = Query(10, ge=1, le=100),
                 offset: int = Query(0, ge=0)):
    def load():
        db_queries_total.inc()
        q = db.query(Course).filter(Course.is_published.is_(True))
        if category_id is not None:
            q = q.filter(Course.category_id == category_id)
        if level:
            q = q.filter(Course.level == level)
        if tier:
            q = q.filter(Course.subscription_tier == normalize_tier(tier))
        if search:
            q = q.filter(Course.title.ilike(f"%{search}%"))
        rows = q.order_by(Course.created_at.desc(), Course.id.desc()).limit(limit).offset(offset).all()
        return [CourseOut.model_validate(row).model_dump() for row in rows]

    key = cache.catalogue_key(category=category_id, level=level, tier=tier, search=search,
                              limit=limit, offset=offset)
    courses, hit = cache.remember(key, load)
    (cache_hits_total if hit else cache_misses_total).inc()
    return courses

@router.get("/{course_id}", response_model=CourseOut)
def get_course(course_id: int,
               db: Session = Depends(get_db),
               user: UserORM | None = Depends(get_optional_user)):
    return _visible_course(db, course_id, user)

@router.get("/{course_id}/lessons", response_model=list[LessonOut])
def course_lessons(course_id: int,
                   db: Session = Depends(get_db),
                   user: UserORM | None = Depends(get_optional_user)):
    cached = cache.get_cache(cache.lessons_key(course_id))
    if cached is not None:
        cache_hits_total.inc()
        return cached

    cache_misses_total.inc()
    db_queries_total.inc()
    course = _visible_course(db, course_id, user)
    rows = db.query(Lesson).filter(Lesson.course_id == course_id).order_by(Lesson.order_index, Lesson.id).all()
    result = [LessonOut.model_validate(row) for row in rows]
    if course.is_published:
        cache.set_cache(cache.lessons_key(course_id), [r.model_dump() for r in result])
    return result

# --- Authoring (instructor owns the course, admin manages all)

@router.post("", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(payload: CourseCreate,
                  user: UserORM = Depends(require_author),
                  db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["subscription_tier"] = _check_tier(payload.subscription_tier)
    if user.role != "admin" or payload.instructor_id is None:
        data["instructor_id"] = user.id
    elif not db.get(UserORM, payload.instructor_id):
        raise HTTPException(404, "Instructor not found")
    if payload.category_id is not None and not db.get(Category, payload.category_id):
        raise HTTPException(404, "Category not found")
    row = Course(**data)
    db.add(row); db.commit(); db.refresh(row)
    _invalidate()
    logger.info("course_created", course_id=row.id, instructor_id=row.instructor_id)
    return row

@router.put("/{course_id}", response_model=CourseOut)
def update_course(course_id: int, payload: CourseUpdate,
                  user: UserORM = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    row = _course_or_404(db, course_id)
    ensure_can_manage(row, user)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("subscription_tier") is not None:
        changes["subscription_tier"] = _check_tier(changes["subscription_tier"])
    if changes.get("category_id") is not None and not db.get(Category, changes["category_id"]):
        raise HTTPException(404, "Category not found")
    for field, value in changes.items():
        setattr(row, field, value)
    db.commit(); db.refresh(row)
    _invalidate(course_id)
    return row

@router.delete("/{course_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_course(course_id: int,
                  user: UserORM = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    row = _course_or_404(db, course_id)
    ensure_can_manage(row, user)
    enrolled = db.query(func.count(Enrollment.id)).filter(Enrollment.course_id == course_id).scalar()
    if enrolled:
        raise HTTPException(400, "Cannot delete a course with enrollments")
    db.delete(row); db.commit()
    _invalidate(course_id)
    logger.info("course_deleted", course_id=course_id, user_id=user.id)

# --- Lesson CRUD

@router.post("/{course_id}/lessons", response_model=LessonOut, status_code=status.HTTP_201_CREATED)
def create_lesson(course_id: int, payload: LessonCreate,
                  user: UserORM = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    course = _course_or_404(db, course_id)
    ensure_can_manage(course, user)
    row = Lesson(course_id=course_id, **payload.model_dump())
    db.add(row); db.flush()
    refresh_course_enrollments(db, course)
    db.commit(); db.refresh(row)
    cache.delete_cache(cache.lessons_key(course_id))
    return row

def _lesson_or_404(db: Session, course_id: int, lesson_id: int) -> Lesson:
    row = db.query(Lesson).filter(Lesson.id == lesson_id, Lesson.course_id == course_id).first()
    if not row: raise HTTPException(404, "Lesson not found")
    return row

@router.put("/{course_id}/lessons/{lesson_id}", response_model=LessonOut)
def update_lesson(course_id: int, lesson_id: int, payload: LessonUpdate,
                  user: UserORM = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    ensure_can_manage(_course_or_404(db, course_id), user)
    row = _lesson_or_404(db, course_id, lesson_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(row, field, value)
    db.commit(); db.refresh(row)
    cache.delete_cache(cache.lessons_key(course_id))
    return row

@router.delete("/{course_id}/lessons/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lesson(course_id: int, lesson_id: int,
                  user: UserORM = Depends(get_current_user),
                  db: Session = Depends(get_db)):
    course = _course_or_404(db, course_id)
    ensure_can_manage(course, user)
    row = _lesson_or_404(db, course_id, lesson_id)
    db.delete(row); db.flush()
    refresh_course_enrollments(db, course)
    db.commit()
    cache.delete_cache(cache.lessons_key(course_id))

# --- Exam authoring

@router.post("/{course_id}/exams", response_model=ExamOut, status_code=status.HTTP_201_CREATED)
def create_exam(course_id: int, payload: ExamCreate,
                user: UserORM = Depends(get_current_user),
                db: Session = Depends(get_db)):
    course = _course_or_404(db, course_id)
    ensure_can_manage(course, user)
    for index, q in enumerate(payload.questions):
        if q.question_type not in QUESTION_TYPES:
            raise HTTPException(400, f"Question {index + 1} has an unknown type")
        if q.question_type == "multiple_select" and not isinstance(q.correct_answer, list):
            raise HTTPException(400, f"Question {index + 1} needs a list of correct answers")
        if q.question_type == "single_choice" and not q.options:
            raise HTTPException(400, f"Question {index + 1} needs options")

    exam = Exam(course_id=course_id, **payload.model_dump(exclude={"questions"}))
    exam.questions = [ExamQuestion(**q.model_dump()) for q in payload.questions]
    course.has_final_exam = True
    db.add(exam); db.commit(); db.refresh(exam)
    _invalidate(course_id)
    logger.info("exam_created", course_id=course_id, exam_id=exam.id, questions=len(exam.questions))
    return exam
