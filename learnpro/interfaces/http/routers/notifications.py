import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ....application.errors import UpstreamError
from ....infrastructure.db import get_db
from ....infrastructure.mailer import ResendMailer, get_mailer
from ....infrastructure.models import Notification, UserORM, utcnow
from ....infrastructure.repositories import NotificationRepository
from ..authz import get_current_user, require_admin
from ..schemas import NotificationList, NotificationOut, NotificationSend, NotificationUpdate

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def _live(db: Session, user_id: int):
    now = utcnow()
    return (db.query(Notification)
            .filter(Notification.user_id == user_id,
                    or_(Notification.expires_at.is_(None), Notification.expires_at > now)))

@router.get("", response_model=NotificationList)
def list_notifications(
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    include_read: bool = True,
):
    q = _live(db, user.id)
    if not include_read:
        q = q.filter(Notification.is_read.is_(False))
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).offset(offset).all()
    unread = _live(db, user.id).filter(Notification.is_read.is_(False)).count()
    return NotificationList(notifications=[NotificationOut.model_validate(r) for r in rows], unread_count=unread)

@router.put("/{notification_id}", response_model=NotificationOut)
def mark_notification(
    notification_id: int,
    payload: NotificationUpdate,
    user: UserORM = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = (db.query(Notification)
           .filter(Notification.id == notification_id, Notification.user_id == user.id)
           .first())
    if not row: raise HTTPException(404, "Notification not found")
    row.is_read = payload.is_read
    db.commit(); db.refresh(row)
    return row

@router.post("/read-all")
def mark_all_read(user: UserORM = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = (db.query(Notification)
               .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
               .update({Notification.is_read: True}, synchronize_session=False))
    db.commit()
    return {"updated": updated}

@router.post("/send", response_model=NotificationOut, status_code=201)
def send_notification(
    payload: NotificationSend,
    admin: UserORM = Depends(require_admin),
    db: Session = Depends(get_db),
    mailer: ResendMailer = Depends(get_mailer),
):
    target = db.get(UserORM, payload.user_id)
    if not target: raise HTTPException(404, "User not found")
    row = NotificationRepository(db).create(
        target.id, payload.title, payload.message, type=payload.type,
        action_url=payload.action_url, expires_at=payload.expires_at,
    )
    prefs = target.preferences
    wants_email = prefs is None or prefs.email_notifications
    if payload.send_email and wants_email:
        try:
            mailer.send_notification(target.email, target.full_name, payload.title, payload.message,
                                     action_url=payload.action_url)
        except UpstreamError as exc:
            # the in-app notification is already stored
            logger.warning("notification_email_failed", notification_id=row.id, error=exc.message)
    return row
