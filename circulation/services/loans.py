"""Loan lifecycle: checkout, renewal, return and overdue marking.

Each public method is one transaction. Cascades run in order inside it:
a return closes the loan, frees the copy, issues the overdue fine and then
offers the copy to the reservation queue.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy import or_, and_
from sqlalchemy.orm import Session
from circulation.database import transaction
from circulation.models.enums import (
    AccountState,
    CopyCondition,
    CopyStatus,
    LoanStatus,
    NotificationType,
    Role,
)
from circulation.models.loan import Loan, LoanConfiguration
from circulation.models.material import MaterialCopy
from circulation.models.user import User
from circulation.services import notifications
from circulation.services.copies import claim_copy, get_copy, is_lendable
from circulation.services.errors import (
    NotFoundError,
    ValidationError,
    CopyUnavailable,
    LoanAlreadyReturned,
    LoanOverdue,
    MemberIneligible,
    RenewalLimitExceeded,
)
from circulation.services.fines import FineLedger, overdue_days
from circulation.services.loan_config import get_configuration
from circulation.services.queue import ReservationQueue
from circulation.utils.timezone import now_local, ensure_aware

logger = logging.getLogger(__name__)

OPEN_LOAN_STATUSES = (LoanStatus.ACTIVE.value, LoanStatus.OVERDUE.value)


def get_member(db: Session, member_id: int) -> User:
    member = db.query(User).filter(
        User.user_id == member_id,
        User.user_role == Role.MEMBER.value
    ).first()
    if not member:
        raise NotFoundError(f"Member with ID {member_id} not found")
    return member


def loan_period(config: LoanConfiguration, copy: MaterialCopy) -> timedelta:
    """Material-specific loan days when set, otherwise the configured default."""
    days = copy.material.max_loan_days if copy.material and copy.material.max_loan_days else config.default_loan_days
    return timedelta(days=days)


class LoanService:

    def __init__(self, db: Session):
        self.db = db
        self.fines = FineLedger(db)
        self.queue = ReservationQueue(db)

    def get(self, loan_id: int) -> Loan:
        loan = self.db.query(Loan).filter(Loan.loan_id == loan_id).first()
        if not loan:
            raise NotFoundError(f"Loan with ID {loan_id} not found")
        return loan

    # Eligibility

    def _overdue_count(self, member_id: int, now: datetime) -> int:
        return self.db.query(Loan).filter(
            Loan.member_id == member_id,
            or_(
                Loan.status == LoanStatus.OVERDUE.value,
                and_(Loan.status == LoanStatus.ACTIVE.value, Loan.due_date < now),
            ),
        ).count()

    def _active_count(self, member_id: int) -> int:
        return self.db.query(Loan).filter(
            Loan.member_id == member_id,
            Loan.status.in_(OPEN_LOAN_STATUSES)
        ).count()

    def borrowing_blockers(self, member: User, now: datetime, config: Optional[LoanConfiguration] = None) -> List[str]:
        """Reasons the member may not borrow right now; empty when eligible."""
        config = config or get_configuration(self.db)
        reasons = []
        if member.account_state != AccountState.ACTIVE.value:
            reasons.append(f"Member account is not active (state: {member.account_state})")

        active = self._active_count(member.user_id)
        if active >= config.max_active_loans:
            reasons.append(f"Maximum active loans reached ({config.max_active_loans})")

        overdue = self._overdue_count(member.user_id, now)
        if overdue > config.max_overdue_loans:
            reasons.append(f"Has {overdue} overdue loan(s)")

        if not config.allow_loans_with_fines:
            unpaid = self.fines.unpaid_total(member.user_id)
            if unpaid > config.max_unpaid_fines:
                reasons.append(f"Has unpaid fines (${unpaid})")
        return reasons

    # Checkout

    def create_loan(self, member_id: int, copy_id: int, loan_date: Optional[datetime] = None,
                    notes: Optional[str] = None, processed_by: Optional[int] = None,
                    now: Optional[datetime] = None) -> Loan:
        """Lend an AVAILABLE copy to an eligible member."""
        with transaction(self.db):
            loan = self.open_loan(member_id, copy_id, CopyStatus.AVAILABLE, loan_date=loan_date,
                                  notes=notes, processed_by=processed_by, now=now)
        self.db.refresh(loan)
        return loan

    def open_loan(self, member_id: int, copy_id: int, expected_copy_status: CopyStatus,
                  loan_date: Optional[datetime] = None, notes: Optional[str] = None,
                  processed_by: Optional[int] = None, now: Optional[datetime] = None) -> Loan:
        """Create the loan row and mark the copy BORROWED, in the caller's transaction.

        ``expected_copy_status`` is RESERVED when a held copy is handed over
        for a reservation pickup, AVAILABLE otherwise.
        """
        now = now or now_local()
        loan_date = ensure_aware(loan_date) or now
        config = get_configuration(self.db)

        member = get_member(self.db, member_id)
        copy = get_copy(self.db, copy_id)

        blockers = self.borrowing_blockers(member, now, config)
        if blockers:
            raise MemberIneligible("Member cannot borrow: " + "; ".join(blockers))

        if not is_lendable(copy):
            raise CopyUnavailable(f"Material copy is in {copy.condition} condition and cannot be loaned")
        if copy.status != expected_copy_status.value:
            raise CopyUnavailable(f"Material copy is not available. Current status: {copy.status}")
        if not claim_copy(self.db, copy_id, expected_copy_status, CopyStatus.BORROWED):
            raise CopyUnavailable(f"Material copy {copy_id} was taken by another request")

        loan = Loan(
            member_id=member_id,
            copy_id=copy_id,
            processed_by=processed_by,
            loan_date=loan_date,
            due_date=loan_date + loan_period(config, copy),
            renewal_count=0,
            status=LoanStatus.ACTIVE.value,
            notes=notes,
        )
        self.db.add(loan)
        self.db.flush()
        logger.info(
            f"Loan {loan.loan_id} created: member {member_id}, copy {copy_id}, due {loan.due_date.isoformat()}"
        )
        return loan

    # Renewal

    def renew_loan(self, loan_id: int, now: Optional[datetime] = None) -> Loan:
        now = now or now_local()
        with transaction(self.db):
            loan = self.get(loan_id)
            config = get_configuration(self.db)

            if loan.return_date is not None:
                raise LoanAlreadyReturned(f"Loan {loan_id} has already been returned")
            if loan.renewal_count >= config.max_renewals:
                raise RenewalLimitExceeded(
                    f"Loan has reached maximum number of renewals ({config.max_renewals})"
                )
            if loan.status == LoanStatus.OVERDUE.value or now > loan.due_date:
                raise LoanOverdue("Cannot renew an overdue loan. Please return the item first.")
            if not config.allow_loans_with_fines:
                unpaid = self.fines.unpaid_total(loan.member_id)
                if unpaid > config.max_unpaid_fines:
                    raise MemberIneligible(
                        f"Member has unpaid fines totaling ${unpaid}. Please pay fines before renewing."
                    )

            new_due_date = loan.due_date + loan_period(config, loan.copy)
            renewed = self.db.query(Loan).filter(
                Loan.loan_id == loan_id,
                Loan.renewal_count == loan.renewal_count,
                Loan.status == LoanStatus.ACTIVE.value
            ).update({
                "due_date": new_due_date,
                "renewal_count": loan.renewal_count + 1,
            }, synchronize_session="evaluate")
            if renewed == 0:
                raise RenewalLimitExceeded(f"Loan {loan_id} was renewed or closed by another request")
            logger.info(f"Loan {loan_id} renewed until {new_due_date.isoformat()} (renewal {loan.renewal_count})")
        self.db.refresh(loan)
        return loan

    # Return

    def return_loan(self, loan_id: int, return_date: Optional[datetime] = None,
                    condition: Optional[CopyCondition] = None, now: Optional[datetime] = None) -> Loan:
        now = now or now_local()
        return_date = ensure_aware(return_date) or now
        with transaction(self.db):
            loan = self.get(loan_id)
            if loan.return_date is not None:
                raise LoanAlreadyReturned(f"Loan {loan_id} has already been returned")
            if return_date < loan.loan_date:
                raise ValidationError(
                    "Return date cannot be earlier than the loan date",
                    errors=[{"field": "returnDate", "message": "must not precede loanDate"}],
                )

            closed = self.db.query(Loan).filter(
                Loan.loan_id == loan_id,
                Loan.return_date.is_(None)
            ).update({
                "return_date": return_date,
                "status": LoanStatus.RETURNED.value,
            }, synchronize_session="evaluate")
            if closed == 0:
                raise LoanAlreadyReturned(f"Loan {loan_id} has already been returned")

            copy = loan.copy
            if condition is not None:
                copy.condition = condition.value
            if condition == CopyCondition.DAMAGED:
                shelf_status = CopyStatus.UNDER_REPAIR
            elif condition == CopyCondition.LOST:
                shelf_status = CopyStatus.REMOVED
            else:
                shelf_status = CopyStatus.AVAILABLE
            if not claim_copy(self.db, copy.copy_id, CopyStatus.BORROWED, shelf_status):
                logger.warning(f"Copy {copy.copy_id} was not BORROWED when loan {loan_id} was returned")

            config = get_configuration(self.db)
            days = overdue_days(loan.due_date, return_date, config.grace_period_days)
            if days > 0:
                self.fines.create_for_overdue_return(loan, days, config.daily_fine_amount,
                                                     issued_by=loan.processed_by)
            notifications.notify(
                self.db,
                loan.member_id,
                NotificationType.LOAN_RETURNED,
                "Loan returned",
                f"'{copy.material.title}' was checked in on {return_date.date().isoformat()}.",
            )

            if shelf_status == CopyStatus.AVAILABLE:
                self.queue.promote_next(copy.material_id, copy.copy_id, now=now)
            logger.info(f"Loan {loan_id} returned ({days} billable late day(s)); copy {copy.copy_id} -> {shelf_status.value}")
        self.db.refresh(loan)
        return loan

    # Batch

    def mark_overdue(self, now: Optional[datetime] = None) -> dict:
        """Flag ACTIVE loans past due as OVERDUE. Fines are only issued at return."""
        now = now or now_local()
        candidate_ids = [row.loan_id for row in self.db.query(Loan.loan_id).filter(
            Loan.status == LoanStatus.ACTIVE.value,
            Loan.due_date < now
        ).order_by(Loan.loan_id).all()]
        self.db.rollback()

        updated_ids = []
        for loan_id in candidate_ids:
            try:
                with transaction(self.db):
                    changed = self.db.query(Loan).filter(
                        Loan.loan_id == loan_id,
                        Loan.status == LoanStatus.ACTIVE.value,
                        Loan.due_date < now
                    ).update({"status": LoanStatus.OVERDUE.value}, synchronize_session=False)
                if changed:
                    updated_ids.append(loan_id)
            except Exception as e:
                logger.error(f"Failed to mark loan {loan_id} overdue: {e}", exc_info=True)

        if updated_ids:
            logger.info(f"Marked {len(updated_ids)} loan(s) overdue")
        return {"updated": len(updated_ids), "loanIds": [str(loan_id) for loan_id in updated_ids]}

    # Queries

    def list_loans(self, member_id: Optional[int] = None, status: Optional[LoanStatus] = None,
                   overdue: bool = False, page: int = 1, page_size: int = 20,
                   now: Optional[datetime] = None) -> dict:
        query = self.db.query(Loan)
        if member_id:
            query = query.filter(Loan.member_id == member_id)
        if status:
            query = query.filter(Loan.status == status.value)
        if overdue:
            now = now or now_local()
            query = query.filter(or_(
                Loan.status == LoanStatus.OVERDUE.value,
                and_(Loan.status == LoanStatus.ACTIVE.value, Loan.due_date < now),
            ))

        total = query.count()
        loans = query.order_by(Loan.loan_date.desc(), Loan.loan_id.desc()) \
            .offset((page - 1) * page_size).limit(page_size).all()
        return {
            "loans": [loan.to_dict() for loan in loans],
            "total": total,
            "page": page,
            "pageSize": page_size,
            "totalPages": math.ceil(total / page_size) if total else 0,
        }

    def member_stats(self, member_id: int, now: Optional[datetime] = None) -> dict:
        now = now or now_local()
        member = get_member(self.db, member_id)
        config = get_configuration(self.db)
        fine_stats = self.fines.member_stats(member_id)
        reasons = self.borrowing_blockers(member, now, config)
        return {
            "activeLoans": self.db.query(Loan).filter(
                Loan.member_id == member_id,
                Loan.status == LoanStatus.ACTIVE.value
            ).count(),
            "overdueLoans": self._overdue_count(member_id, now),
            "totalFines": fine_stats["totalFines"],
            "unpaidFines": fine_stats["unpaidFines"],
            "canBorrow": not reasons,
            "reasons": reasons or None,
        }
