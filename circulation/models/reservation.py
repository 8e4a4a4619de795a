from sqlalchemy import Column, String, Integer, Text, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base, UTCDateTime
from circulation.models.enums import ReservationStatus, check_in
from circulation.utils.timezone import isoformat

OPEN_RESERVATION = text("status IN ('PENDING', 'READY')")

class Reservation(Base):
    __tablename__ = "reservation"

    reservation_id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(Integer, ForeignKey("material.material_id", ondelete="CASCADE"), nullable=False, index=True)
    copy_id = Column(Integer, ForeignKey("material_copy.copy_id", ondelete="SET NULL"), nullable=True)
    loan_id = Column(Integer, ForeignKey("loan.loan_id", ondelete="SET NULL"), nullable=True)
    status = Column(String(50), default=ReservationStatus.PENDING.value, nullable=False, index=True)
    reservation_date = Column(UTCDateTime, nullable=False, index=True)  # FIFO order key
    expiration_date = Column(UTCDateTime, nullable=True)  # Set only while READY
    picked_up_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    member = relationship("User", back_populates="reservations")
    material = relationship("Material", back_populates="reservations")
    copy = relationship("MaterialCopy")
    loan = relationship("Loan")

    __table_args__ = (
        CheckConstraint(check_in("status", ReservationStatus), name="chk_reservation_status"),
        # At most one open reservation per member and material
        Index(
            "uq_reservation_open_member_material",
            "member_id",
            "material_id",
            unique=True,
            postgresql_where=OPEN_RESERVATION,
            sqlite_where=OPEN_RESERVATION,
        ),
    )

    def to_dict(self, queue_position=None):
        return {
            "id": str(self.reservation_id),
            "memberId": str(self.member_id),
            "materialId": str(self.material_id),
            "copyId": str(self.copy_id) if self.copy_id else None,
            "loanId": str(self.loan_id) if self.loan_id else None,
            "status": self.status,
            "queuePosition": queue_position,
            "reservationDate": isoformat(self.reservation_date),
            "expirationDate": isoformat(self.expiration_date),
            "pickedUpAt": isoformat(self.picked_up_at),
            "cancelledAt": isoformat(self.cancelled_at),
            "notes": self.notes,
            "material": {
                "id": str(self.material.material_id),
                "title": self.material.title,
                "materialType": self.material.material_type,
            } if self.material else None,
            "copy": self.copy.to_dict(include_material=False) if self.copy else None,
            "loan": self.loan.to_dict() if self.loan else None,
        }
