from sqlalchemy import Column, String, Integer, Boolean, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base, UTCDateTime
from circulation.models.enums import NotificationType, check_in
from circulation.utils.timezone import isoformat

class Notification(Base):
    __tablename__ = "notification"

    notification_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    notification_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        CheckConstraint(check_in("notification_type", NotificationType), name="chk_notification_type"),
    )

    def to_dict(self):
        return {
            "id": str(self.notification_id),
            "userId": str(self.user_id),
            "type": self.notification_type,
            "title": self.title,
            "message": self.message,
            "isRead": self.is_read,
            "readAt": isoformat(self.read_at),
            "createdAt": isoformat(self.created_at),
        }
