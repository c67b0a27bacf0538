from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ....application.use_cases.complete_course import CompleteCourse
from ....application.use_cases.enroll_in_course import EnrollInCourse
from ....application.use_cases.update_lesson_progress import UpdateLessonProgress
from ....infrastructure.db import get_db
from ....infrastructure.models import Course, Enrollment, LessonProgress, UserORM
from ..authz import get_current_user
from ..schemas import (
    EnrollResp, EnrollmentOut, LessonProgressOut, LessonProgressUpdate, MyProgressItem, ProgressUpdateResp,
)

router = APIRouter(prefix="/api", tags=["progress"])


@router.post("/courses/{course_id}/enroll", response_model=EnrollResp)
def enroll(
    course_id: int,
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enrollment, created = EnrollInCourse(db).execute(user.id, course_id)
    return EnrollResp(enrollment=EnrollmentOut.model_validate(enrollment), already_enrolled=not created)

@router.put("/progress/lessons/{lesson_id}", response_model=ProgressUpdateResp)
def update_lesson_progress(
    lesson_id: int,
    payload: LessonProgressUpdate,
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    progress, update = UpdateLessonProgress(db).execute(
        user.id, lesson_id, payload.completed, payload.watch_time_seconds
    )
    return ProgressUpdateResp(
        progress=LessonProgressOut.model_validate(progress),
        course_progress_percentage=update.progress_percentage,
        course_completed=update.completed_at is not None,
        completed_at=update.completed_at,
    )

@router.post("/courses/{course_id}/complete", response_model=EnrollmentOut)
def complete_course(
    course_id: int,
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enrollment, _ = CompleteCourse(db).execute(user.id, course_id)
    return enrollment

@router.get("/progress/my", response_model=list[MyProgressItem])
def my_progress(
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    rows = (db.query(Enrollment, Course.title)
            .join(Course, Course.id == Enrollment.course_id)
            .filter(Enrollment.user_id == user.id)
            .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
            .limit(limit).offset(offset)
            .all())
    return [
        MyProgressItem(course_id=e.course_id, course_title=title, progress_percentage=e.progress_percentage,
                       enrolled_at=e.enrolled_at, completed_at=e.completed_at)
        for e, title in rows
    ]

@router.get("/courses/{course_id}/progress", response_model=list[LessonProgressOut])
def course_progress(
    course_id: int,
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    enrolled = (db.query(Enrollment.id)
                .filter(Enrollment.user_id == user.id, Enrollment.course_id == course_id)
                .first())
    if not enrolled:
        raise HTTPException(403, "You are not enrolled in this course")
    return (db.query(LessonProgress)
            .filter(LessonProgress.user_id == user.id, LessonProgress.course_id == course_id)
            .order_by(LessonProgress.lesson_id)
            .all())
