from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class NotificationResponse(BaseModel):
    id: str
    userId: str
    type: str
    title: str
    message: str
    isRead: bool
    readAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None

class UnreadCount(BaseModel):
    count: int
