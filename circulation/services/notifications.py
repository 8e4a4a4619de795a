import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from circulation.database import transaction
from circulation.models.enums import NotificationType
from circulation.models.notification import Notification
from circulation.services.errors import NotFoundError
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)

def notify(db: Session, user_id: int, notification_type: NotificationType, title: str, message: str) -> Notification:
    """Queue a notification in the caller's transaction."""
    notification = Notification(
        user_id=user_id,
        notification_type=notification_type.value,
        title=title,
        message=message,
        is_read=False,
    )
    db.add(notification)
    logger.debug(f"Notification {notification_type.value} queued for user {user_id}")
    return notification

def list_for_user(db: Session, user_id: int, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.notification_id.desc()).limit(limit).all()

def unread_count(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read.is_(False)
    ).count()

def mark_as_read(db: Session, notification_id: int, user_id: int, now: Optional[datetime] = None) -> Notification:
    with transaction(db):
        notification = db.query(Notification).filter(
            Notification.notification_id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            raise NotFoundError(f"Notification with ID {notification_id} not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = now or now_local()
    db.refresh(notification)
    return notification

def mark_all_as_read(db: Session, user_id: int, now: Optional[datetime] = None) -> int:
    with transaction(db):
        updated = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).update({"is_read": True, "read_at": now or now_local()}, synchronize_session=False)
    return updated
