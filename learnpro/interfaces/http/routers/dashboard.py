from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ....application.use_cases.build_dashboard import BuildDashboard
from ....application.use_cases.course_analytics import CourseAnalytics
from ....infrastructure.db import get_db
from ....infrastructure.models import Course, UserORM
from ..authz import ensure_can_manage, get_current_user

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/dashboard")
def dashboard(user: UserORM = Depends(get_current_user), db: Session = Depends(get_db)):
    return BuildDashboard(db).execute(user.id)

@router.get("/analytics/courses/{course_id}")
def course_analytics(course_id: int,
                     user: UserORM = Depends(get_current_user),
                     db: Session = Depends(get_db)):
    course = db.get(Course, course_id)
    if course is not None:
        ensure_can_manage(course, user)
    return CourseAnalytics(db).execute(course_id)
