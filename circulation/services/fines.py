import logging
import math
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from circulation.database import transaction
from circulation.models.enums import FineStatus, FineType, NotificationType
from circulation.models.fine import Fine
from circulation.models.loan import Loan
from circulation.services import notifications
from circulation.services.errors import (
    NotFoundError,
    ValidationError,
    FineNotPending,
    OverpaymentRejected,
)
from circulation.services.loan_config import get_configuration
from circulation.utils.timezone import now_local, ensure_aware

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
SECONDS_PER_DAY = 24 * 60 * 60


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def overdue_days(due_date: datetime, return_date: datetime, grace_period_days: int = 0) -> int:
    """Billable late days: started days past due, minus the grace period."""
    late_seconds = (return_date - due_date).total_seconds()
    if late_seconds <= 0:
        return 0
    return max(0, math.ceil(late_seconds / SECONDS_PER_DAY) - grace_period_days)


class FineLedger:
    """Amounts owed on loans, their payments and waivers."""

    def __init__(self, db: Session):
        self.db = db

    def create_for_overdue_return(self, loan: Loan, days: int, daily_rate, issued_by: Optional[int] = None) -> Fine:
        """Record the late-return fine for a loan. Runs inside the caller's transaction.

        Only one overdue fine exists per loan; a repeated call returns it.
        """
        existing = self.db.query(Fine).filter(
            Fine.loan_id == loan.loan_id,
            Fine.fine_type == FineType.OVERDUE.value
        ).first()
        if existing:
            return existing

        fine = Fine(
            loan_id=loan.loan_id,
            fine_type=FineType.OVERDUE.value,
            amount=to_money(Decimal(days) * to_money(daily_rate)),
            paid_amount=Decimal("0.00"),
            status=FineStatus.PENDING.value,
            reason=f"Late return ({days} day{'s' if days != 1 else ''} overdue)",
            issued_by=issued_by,
        )
        self.db.add(fine)
        self.db.flush()
        notifications.notify(
            self.db,
            loan.member_id,
            NotificationType.FINE_ISSUED,
            "Fine issued",
            f"A fine of ${fine.amount} was issued for returning loan {loan.loan_id} {days} day(s) late.",
        )
        logger.info(f"Fine {fine.fine_id} created for loan {loan.loan_id}: {days} day(s) x {daily_rate} = {fine.amount}")
        return fine

    def create_manual(self, loan_id: int, amount, reason: str, fine_type: FineType = FineType.OTHER,
                      notes: Optional[str] = None, issued_by: Optional[int] = None) -> Fine:
        with transaction(self.db):
            loan = self.db.query(Loan).filter(Loan.loan_id == loan_id).first()
            if not loan:
                raise NotFoundError(f"Loan with ID {loan_id} not found")
            if fine_type == FineType.OVERDUE:
                raise ValidationError(
                    "Overdue fines are issued automatically on return",
                    errors=[{"field": "fineType", "message": "OVERDUE is reserved for late returns"}],
                )
            fine = Fine(
                loan_id=loan_id,
                fine_type=fine_type.value,
                amount=to_money(amount),
                paid_amount=Decimal("0.00"),
                status=FineStatus.PENDING.value,
                reason=reason,
                notes=notes,
                issued_by=issued_by,
            )
            self.db.add(fine)
            self.db.flush()
            notifications.notify(
                self.db,
                loan.member_id,
                NotificationType.FINE_ISSUED,
                "Fine issued",
                f"A fine of ${fine.amount} was issued: {reason}.",
            )
            logger.info(f"Manual {fine_type.value} fine {fine.fine_id} created for loan {loan_id}: {fine.amount}")
        self.db.refresh(fine)
        return fine

    def get(self, fine_id: int) -> Fine:
        fine = self.db.query(Fine).filter(Fine.fine_id == fine_id).first()
        if not fine:
            raise NotFoundError(f"Fine with ID {fine_id} not found")
        return fine

    def _lock(self, fine_id: int) -> Fine:
        fine = self.db.query(Fine).filter(Fine.fine_id == fine_id).with_for_update().first()
        if not fine:
            raise NotFoundError(f"Fine with ID {fine_id} not found")
        return fine

    def record_payment(self, fine_id: int, payment, paid_date: Optional[datetime] = None,
                       now: Optional[datetime] = None) -> Fine:
        """Add a payment to the fine's running total."""
        with transaction(self.db):
            fine = self._lock(fine_id)
            self._apply_payment(fine, to_money(payment), ensure_aware(paid_date) or now or now_local())
        self.db.refresh(fine)
        return fine

    def _apply_payment(self, fine: Fine, payment: Decimal, paid_date: datetime):
        if fine.status != FineStatus.PENDING.value:
            raise FineNotPending(f"Fine is not pending. Current status: {fine.status}")
        if payment <= 0:
            raise ValidationError(
                "Payment must be greater than zero",
                errors=[{"field": "paidAmount", "message": "must be greater than zero"}],
            )

        total = fine.paid_amount + payment
        if total > fine.amount:
            if get_configuration(self.db).reject_fine_overpayment:
                raise OverpaymentRejected(
                    f"Payment of ${payment} exceeds the outstanding balance of ${fine.outstanding}"
                )
            logger.info(f"Payment on fine {fine.fine_id} capped at outstanding balance {fine.outstanding}")
            total = fine.amount

        fine.paid_amount = total
        if total >= fine.amount:
            fine.status = FineStatus.PAID.value
            fine.paid_date = paid_date
            logger.info(f"Fine {fine.fine_id} paid in full")
        else:
            logger.info(f"Partial payment on fine {fine.fine_id}: {total}/{fine.amount}")

    def waive(self, fine_id: int, reason: Optional[str] = None) -> Fine:
        with transaction(self.db):
            fine = self._lock(fine_id)
            self._apply_waiver(fine, reason)
        self.db.refresh(fine)
        return fine

    def _apply_waiver(self, fine: Fine, reason: Optional[str]):
        if fine.status != FineStatus.PENDING.value:
            raise FineNotPending(f"Fine is not pending. Current status: {fine.status}")
        fine.status = FineStatus.WAIVED.value
        if reason:
            fine.notes = f"{fine.notes}\nWaived: {reason}" if fine.notes else f"Waived: {reason}"
        logger.info(f"Fine {fine.fine_id} waived")

    def apply_update(self, fine_id: int, paid_amount=None, status: Optional[FineStatus] = None,
                     paid_date: Optional[datetime] = None, notes: Optional[str] = None,
                     now: Optional[datetime] = None) -> Fine:
        """Dashboard-style update: ``paid_amount`` is the new cumulative total paid."""
        with transaction(self.db):
            fine = self._lock(fine_id)
            when = ensure_aware(paid_date) or now or now_local()

            if paid_amount is not None:
                target = to_money(paid_amount)
                if target < fine.paid_amount:
                    raise ValidationError(
                        "Paid amount cannot decrease",
                        errors=[{"field": "paidAmount", "message": f"must be at least {fine.paid_amount}"}],
                    )
                if target > fine.paid_amount:
                    self._apply_payment(fine, target - fine.paid_amount, when)

            if status == FineStatus.WAIVED:
                self._apply_waiver(fine, notes)
            elif status == FineStatus.PAID and fine.status == FineStatus.PENDING.value:
                self._apply_payment(fine, fine.outstanding, when)
            elif status == FineStatus.PENDING and fine.status != FineStatus.PENDING.value:
                raise FineNotPending(f"Fine is already {fine.status} and cannot be reopened")

            if notes is not None and status != FineStatus.WAIVED:
                fine.notes = notes
        self.db.refresh(fine)
        return fine

    def list_fines(self, member_id: Optional[int] = None, status: Optional[FineStatus] = None,
                   page: int = 1, page_size: int = 20) -> dict:
        query = self.db.query(Fine)
        if member_id:
            query = query.join(Loan, Fine.loan_id == Loan.loan_id).filter(Loan.member_id == member_id)
        if status:
            query = query.filter(Fine.status == status.value)

        total = query.count()
        fines = query.order_by(Fine.created_at.desc(), Fine.fine_id.desc()) \
            .offset((page - 1) * page_size).limit(page_size).all()
        return {
            "fines": [fine.to_dict() for fine in fines],
            "total": total,
            "page": page,
            "pageSize": page_size,
            "totalPages": math.ceil(total / page_size) if total else 0,
        }

    def unpaid_total(self, member_id: int) -> Decimal:
        value = self.db.query(func.coalesce(func.sum(Fine.amount - Fine.paid_amount), 0)) \
            .join(Loan, Fine.loan_id == Loan.loan_id) \
            .filter(Loan.member_id == member_id, Fine.status == FineStatus.PENDING.value) \
            .scalar()
        return to_money(value)

    def member_stats(self, member_id: int) -> dict:
        fines = self.db.query(Fine).join(Loan, Fine.loan_id == Loan.loan_id) \
            .filter(Loan.member_id == member_id).all()
        total = sum((fine.amount for fine in fines), Decimal("0.00"))
        unpaid = sum(
            (fine.outstanding for fine in fines if fine.status == FineStatus.PENDING.value),
            Decimal("0.00"),
        )
        return {
            "totalFines": float(total),
            "unpaidFines": float(unpaid),
            "fineCount": len(fines),
        }
