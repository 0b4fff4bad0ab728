from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.auth.deps import get_current_user
from app.core.rbac import require
from app.utils.badges import get_badge_count, invalidate_badge
from app.db.models.notification import Notification

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: str
    category: str
    link: str | None
    metadata: dict = Field(validation_alias="meta")
    is_read: bool
    read_at: datetime | None
    created_at: datetime


@router.get("", response_model=list[NotificationOut])
def list_notifications(unread_only: bool = False, db: Session = Depends(get_db), user=Depends(get_current_user)):
    q = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        q = q.filter(Notification.is_read == False)
    return q.order_by(Notification.id.desc()).limit(300).all()


@router.get("/unread-count")
def unread_count(db: Session = Depends(get_db), user=Depends(get_current_user)):
    return {"unread": get_badge_count(db, user)}


@router.post("/read-all")
def mark_all_read(db: Session = Depends(get_db), user=Depends(get_current_user)):
    n = db.query(Notification).filter(Notification.user_id == user.id, Notification.is_read == False).update(
        {"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False
    )
    db.commit()
    invalidate_badge(user.id)
    return {"updated": n}


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_read(notification_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    # only the recipient may mark it read
    n = db.get(Notification, notification_id)
    require(n is not None and n.user_id == user.id, "Notification not found", 404)
    if not n.is_read:
        n.is_read = True
        n.read_at = datetime.utcnow()
        db.commit()
        invalidate_badge(user.id)
    return n
