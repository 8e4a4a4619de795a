from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from circulation.database import get_db
from circulation.models.user import User
from circulation.services import notifications
from circulation.services.auth import get_current_user
from circulation.schemas.notification import NotificationResponse, UnreadCount

router = APIRouter(prefix="/notifications", tags=["Notifications"])

@router.get("", response_model=List[NotificationResponse])
async def get_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    items = notifications.list_for_user(db, current_user.user_id, unread_only=unread_only)
    return [NotificationResponse.model_validate(n.to_dict()) for n in items]

@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return UnreadCount(count=notifications.unread_count(db, current_user.user_id))

@router.patch("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"updated": notifications.mark_all_as_read(db, current_user.user_id)}

@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification = notifications.mark_as_read(db, notification_id, current_user.user_id)
    return NotificationResponse.model_validate(notification.to_dict())
