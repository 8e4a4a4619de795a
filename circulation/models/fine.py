from sqlalchemy import Column, String, Integer, Numeric, Text, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base, UTCDateTime
from circulation.models.enums import FineStatus, FineType, check_in
from circulation.utils.timezone import isoformat

OVERDUE_FINE = text("fine_type = 'OVERDUE'")

class Fine(Base):
    __tablename__ = "fine"

    fine_id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(Integer, ForeignKey("loan.loan_id", ondelete="CASCADE"), nullable=False, index=True)
    fine_type = Column(String(50), default=FineType.OVERDUE.value, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    paid_amount = Column(Numeric(10, 2), default=0, nullable=False)
    status = Column(String(50), default=FineStatus.PENDING.value, nullable=False, index=True)
    reason = Column(String(255), nullable=False)
    notes = Column(Text, nullable=True)
    issued_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    paid_date = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    loan = relationship("Loan", back_populates="fines")
    issued_by_user = relationship("User", foreign_keys=[issued_by])

    __table_args__ = (
        CheckConstraint(check_in("status", FineStatus), name="chk_fine_status"),
        CheckConstraint(check_in("fine_type", FineType), name="chk_fine_type"),
        CheckConstraint("amount >= 0", name="chk_fine_amount"),
        CheckConstraint("paid_amount >= 0", name="chk_fine_paid_amount"),
        # One overdue fine per loan return
        Index(
            "uq_fine_overdue_loan",
            "loan_id",
            unique=True,
            postgresql_where=OVERDUE_FINE,
            sqlite_where=OVERDUE_FINE,
        ),
    )

    @property
    def outstanding(self):
        return self.amount - self.paid_amount

    def to_dict(self, include_loan: bool = True):
        data = {
            "id": str(self.fine_id),
            "loanId": str(self.loan_id),
            "fineType": self.fine_type,
            "amount": float(self.amount),
            "paidAmount": float(self.paid_amount),
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "issuedBy": str(self.issued_by) if self.issued_by else None,
            "paidDate": isoformat(self.paid_date),
            "createdAt": isoformat(self.created_at),
        }
        if include_loan and self.loan:
            data["memberId"] = str(self.loan.member_id)
            data["copyId"] = str(self.loan.copy_id)
        return data
