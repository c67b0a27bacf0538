import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from ....infrastructure.db import get_db
from ....infrastructure.models import Certificate, Course, Enrollment, Payment, UserORM
from ..authz import require_admin
from ..schemas import RoleUpdate, StatsResp, StatusUpdate, UserResp

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _user_or_404(db: Session, user_id: int) -> UserORM:
    row = db.get(UserORM, user_id)
    if not row: raise HTTPException(404, "User not found")
    return row

@router.get("/users", response_model=list[UserResp])
def list_users(
    admin: UserORM = Depends(require_admin),
    db: Session = Depends(get_db),
    role: str | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    q = db.query(UserORM)
    if role:
        q = q.filter(UserORM.role == role)
    return q.order_by(UserORM.id).limit(limit).offset(offset).all()

@router.put("/users/{user_id}/role", response_model=UserResp)
def change_role(
    user_id: int,
    payload: RoleUpdate,
    admin: UserORM = Depends(require_admin),
    db: Session = Depends(get_db),
):
    row = _user_or_404(db, user_id)
    if row.id == admin.id and payload.role != "admin":
        raise HTTPException(400, "Admins cannot remove their own admin role")
    row.role = payload.role
    db.commit(); db.refresh(row)
    logger.info("user_role_changed", user_id=user_id, role=payload.role, admin_id=admin.id)
    return row

@router.put("/users/{user_id}/status", response_model=UserResp)
def change_status(
    user_id: int,
    payload: StatusUpdate,
    admin: UserORM = Depends(require_admin),
    db: Session = Depends(get_db),
):
    row = _user_or_404(db, user_id)
    if row.id == admin.id and not payload.is_active:
        raise HTTPException(400, "Admins cannot deactivate themselves")
    row.is_active = payload.is_active
    db.commit(); db.refresh(row)
    logger.info("user_status_changed", user_id=user_id, is_active=payload.is_active, admin_id=admin.id)
    return row

@router.get("/stats", response_model=StatsResp)
def stats(admin: UserORM = Depends(require_admin), db: Session = Depends(get_db)):
    def count(column, *criteria):
        return db.query(func.count(column)).filter(*criteria).scalar() or 0

    revenue = (db.query(func.coalesce(func.sum(Payment.amount), 0.0))
               .filter(Payment.status == "completed")
               .scalar())
    return StatsResp(
        total_users=count(UserORM.id),
        total_courses=count(Course.id),
        published_courses=count(Course.id, Course.is_published.is_(True)),
        total_enrollments=count(Enrollment.id),
        completed_enrollments=count(Enrollment.id, Enrollment.completed_at.isnot(None)),
        certificates_issued=count(Certificate.id),
        total_revenue=round(float(revenue or 0), 2),
    )
