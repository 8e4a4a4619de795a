from sqlalchemy import Column, String, Integer, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base, UTCDateTime
from circulation.models.enums import Role, AccountState, check_in

class User(Base):
    __tablename__ = "user"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    user_fname = Column(String(100), nullable=False)
    user_lname = Column(String(100), nullable=False)
    user_email = Column(String(255), unique=True, nullable=False, index=True)
    user_password_hash = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=True)
    user_role = Column(String(50), default=Role.MEMBER.value, nullable=False)
    account_state = Column(String(50), default=AccountState.ACTIVE.value, nullable=False)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    loans = relationship("Loan", back_populates="member", foreign_keys="Loan.member_id")
    reservations = relationship("Reservation", back_populates="member")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(check_in("user_role", Role), name="chk_user_role"),
        CheckConstraint(check_in("account_state", AccountState), name="chk_user_account_state"),
    )

    @property
    def is_librarian(self) -> bool:
        return self.user_role == Role.LIBRARIAN.value

    def to_dict(self):
        return {
            "id": str(self.user_id),
            "name": f"{self.user_fname} {self.user_lname}",
            "fname": self.user_fname,
            "lname": self.user_lname,
            "email": self.user_email,
            "phoneNumber": self.phone_number,
            "role": self.user_role,
            "accountState": self.account_state,
        }
