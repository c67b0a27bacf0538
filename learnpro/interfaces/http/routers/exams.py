from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ....application.use_cases.submit_exam import SubmitExam
from ....infrastructure.db import get_db
from ....infrastructure.models import Enrollment, Exam, ExamAttempt, UserORM
from ..authz import can_manage, get_current_user
from ..schemas import AttemptCreate, AttemptOut, AttemptResp, ExamOut

router = APIRouter(prefix="/api/exams", tags=["exams"])


def _exam_or_404(db: Session, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if not exam: raise HTTPException(404, "Exam not found")
    return exam

def _is_enrolled(db: Session, user_id: int, course_id: int) -> bool:
    return (db.query(Enrollment.id)
            .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
            .first()) is not None

@router.get("/{exam_id}", response_model=ExamOut)
def get_exam(exam_id: int,
             user: UserORM = Depends(get_current_user),
             db: Session = Depends(get_db)):
    exam = _exam_or_404(db, exam_id)
    manager = can_manage(exam.course, user)
    if not manager and not _is_enrolled(db, user.id, exam.course_id):
        raise HTTPException(403, "Enroll in the course to take its exam")
    out = ExamOut.model_validate(exam)
    if not manager:
        out.questions = [q.model_copy(update={"correct_answer": None}) for q in out.questions]
    return out

@router.post("/{exam_id}/attempts", response_model=AttemptResp, status_code=201)
def submit_attempt(exam_id: int, payload: AttemptCreate,
                   user: UserORM = Depends(get_current_user),
                   db: Session = Depends(get_db)):
    attempt, _, certificate = SubmitExam(db).execute(
        user.id, exam_id, payload.answers, payload.time_taken_seconds
    )
    return AttemptResp(
        attempt=AttemptOut.model_validate(attempt),
        certificate_number=certificate.certificate_number if certificate else None,
    )

@router.get("/{exam_id}/attempts", response_model=list[AttemptOut])
def my_attempts(exam_id: int,
                user: UserORM = Depends(get_current_user),
                db: Session = Depends(get_db)):
    _exam_or_404(db, exam_id)
    return (db.query(ExamAttempt)
            .filter(ExamAttempt.exam_id == exam_id, ExamAttempt.user_id == user.id)
            .order_by(ExamAttempt.completed_at.desc(), ExamAttempt.id.desc())
            .all())
