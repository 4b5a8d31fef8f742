from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..dependencies import get_current_user
from ..models.models import Notification, User
from ..schemas.notification import NotificationResponse
from ..services.store import translate_timeouts

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=List[NotificationResponse])
def get_notifications(
    unreadOnly: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Notifications for the caller, newest first"""
    query = db.query(Notification).filter(
        Notification.recipient_id == current_user.user_id
    )
    if unreadOnly:
        query = query.filter(Notification.is_read.is_(False))
    with translate_timeouts(db):
        return query.order_by(
            Notification.created_at.desc(),
            Notification.notification_id.desc(),
        ).all()


@router.put("/mark-all-read", status_code=204)
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with translate_timeouts(db):
        db.query(Notification).filter(
            Notification.recipient_id == current_user.user_id,
            Notification.is_read.is_(False),
        ).update({Notification.is_read: True}, synchronize_session=False)
        db.commit()


@router.put("/{notification_id}/read", status_code=204)
def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = db.get(Notification, notification_id)
    if notification is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    if notification.recipient_id != current_user.user_id:
        raise HTTPException(status_code=403, detail="Not your notification")
    with translate_timeouts(db):
        notification.is_read = True
        db.commit()
