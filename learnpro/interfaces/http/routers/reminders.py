from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ....application.use_cases.process_reminders import ProcessReminders
from ....domain.progress import as_utc
from ....infrastructure.db import get_db
from ....infrastructure.mailer import ResendMailer, get_mailer
from ....infrastructure.models import Course, Reminder, UserORM
from ..authz import require_admin, require_author
from ..schemas import ReminderBatchResp, ReminderCreate, ReminderOut

router = APIRouter(prefix="/api/reminders", tags=["reminders"])


@router.post("", response_model=ReminderOut, status_code=status.HTTP_201_CREATED)
def schedule_reminder(payload: ReminderCreate,
                      user: UserORM = Depends(require_author),
                      db: Session = Depends(get_db)):
    if not db.get(UserORM, payload.user_id):
        raise HTTPException(404, "User not found")
    if payload.course_id is not None:
        course = db.get(Course, payload.course_id)
        if not course: raise HTTPException(404, "Course not found")
        if user.role != "admin" and course.instructor_id != user.id:
            raise HTTPException(403, "You do not manage this course")
    data = payload.model_dump()
    data["scheduled_for"] = as_utc(payload.scheduled_for)
    row = Reminder(**data)
    db.add(row); db.commit(); db.refresh(row)
    return row

@router.post("/process", response_model=ReminderBatchResp)
def process_reminders(admin: UserORM = Depends(require_admin),
                      db: Session = Depends(get_db),
                      mailer: ResendMailer = Depends(get_mailer)):
    result = ProcessReminders(db, mailer).execute()
    return ReminderBatchResp(processed=result.processed, skipped=result.skipped,
                             total=result.total, errors=result.errors)
