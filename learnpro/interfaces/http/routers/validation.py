from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ....application.use_cases.validate_course_content import ValidateCourseContent
from ....infrastructure import cache
from ....infrastructure.db import get_db
from ....infrastructure.models import Course, UserORM
from ..authz import ensure_can_manage, get_current_user
from ..schemas import ValidationReq

router = APIRouter(prefix="/api/courses", tags=["validation"])


@router.post("/{course_id}/validation")
def validate_course_content(course_id: int, payload: ValidationReq,
                            user: UserORM = Depends(get_current_user),
                            db: Session = Depends(get_db)):
    course = db.get(Course, course_id)
    if not course: raise HTTPException(404, "Course not found")
    ensure_can_manage(course, user)
    report = ValidateCourseContent(db).execute(course_id, payload.action, payload.level)
    if payload.action == "auto_fix":
        cache.invalidate_course(course_id)
    return report.to_dict()
