from sqlalchemy import Column, String, Integer, Numeric, Boolean, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from circulation.database import Base, UTCDateTime
from circulation.models.enums import LoanStatus, check_in
from circulation.utils.timezone import isoformat

class Loan(Base):
    __tablename__ = "loan"

    loan_id = Column(Integer, primary_key=True, autoincrement=True)
    member_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    copy_id = Column(Integer, ForeignKey("material_copy.copy_id", ondelete="RESTRICT"), nullable=False, index=True)
    processed_by = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    loan_date = Column(UTCDateTime, nullable=False)
    due_date = Column(UTCDateTime, nullable=False, index=True)
    return_date = Column(UTCDateTime, nullable=True)
    renewal_count = Column(Integer, default=0, nullable=False)
    status = Column(String(50), default=LoanStatus.ACTIVE.value, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    member = relationship("User", back_populates="loans", foreign_keys=[member_id])
    processed_by_user = relationship("User", foreign_keys=[processed_by])
    copy = relationship("MaterialCopy", back_populates="loans")
    fines = relationship("Fine", back_populates="loan", order_by="Fine.fine_id")

    __table_args__ = (
        CheckConstraint(check_in("status", LoanStatus), name="chk_loan_status"),
        CheckConstraint("due_date >= loan_date", name="chk_loan_due_after_loan"),
        CheckConstraint("renewal_count >= 0", name="chk_loan_renewal_count"),
    )

    def to_dict(self):
        return {
            "id": str(self.loan_id),
            "memberId": str(self.member_id),
            "copyId": str(self.copy_id),
            "processedBy": str(self.processed_by) if self.processed_by else None,
            "loanDate": isoformat(self.loan_date),
            "dueDate": isoformat(self.due_date),
            "returnDate": isoformat(self.return_date),
            "renewalCount": self.renewal_count,
            "status": self.status,
            "notes": self.notes,
            "copy": self.copy.to_dict() if self.copy else None,  # includes the material summary
            "member": self.member.to_dict() if self.member else None,
            "fines": [fine.to_dict(include_loan=False) for fine in self.fines] if self.fines else [],
        }

class LoanConfiguration(Base):
    """Single-row table holding the circulation policy."""
    __tablename__ = "loan_configuration"

    config_id = Column(Integer, primary_key=True, autoincrement=True)
    default_loan_days = Column(Integer, nullable=False)
    max_active_loans = Column(Integer, nullable=False)
    max_renewals = Column(Integer, nullable=False)
    grace_period_days = Column(Integer, nullable=False)
    daily_fine_amount = Column(Numeric(10, 2), nullable=False)
    allow_loans_with_fines = Column(Boolean, nullable=False)
    max_unpaid_fines = Column(Numeric(10, 2), nullable=False)
    max_overdue_loans = Column(Integer, nullable=False)
    reservation_hold_days = Column(Integer, nullable=False)
    reject_fine_overpayment = Column(Boolean, nullable=False)
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    def to_dict(self):
        return {
            "id": str(self.config_id),
            "defaultLoanDays": self.default_loan_days,
            "maxActiveLoans": self.max_active_loans,
            "maxRenewals": self.max_renewals,
            "gracePeriodDays": self.grace_period_days,
            "dailyFineAmount": float(self.daily_fine_amount),
            "allowLoansWithFines": self.allow_loans_with_fines,
            "maxUnpaidFines": float(self.max_unpaid_fines),
            "maxOverdueLoans": self.max_overdue_loans,
            "reservationHoldDays": self.reservation_hold_days,
            "rejectFineOverpayment": self.reject_fine_overpayment,
        }
