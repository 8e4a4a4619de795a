"""Tests for the fine ledger: issuing, payments, waivers and dashboard updates."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from circulation.models.enums import FineStatus, FineType
from circulation.services.errors import (
    FineNotPending,
    NotFoundError,
    OverpaymentRejected,
    ValidationError,
)
from circulation.services.fines import FineLedger, overdue_days, to_money
from circulation.services.loan_config import update_configuration
from circulation.services.loans import LoanService

from conftest import JAN_1


@pytest.fixture
def ledger(db):
    return FineLedger(db)


@pytest.fixture
def late_loan(db, member, copy):
    """A loan returned five days late, carrying a $5.00 overdue fine."""
    service = LoanService(db)
    loan = service.create_loan(member.user_id, copy.copy_id, loan_date=JAN_1, now=JAN_1)
    returned_at = JAN_1 + timedelta(days=19)
    return service.return_loan(loan.loan_id, return_date=returned_at, now=returned_at)


@pytest.fixture
def fine(late_loan):
    return late_loan.fines[0]


class TestOverdueDays:

    def test_on_time(self):
        assert overdue_days(JAN_1, JAN_1) == 0
        assert overdue_days(JAN_1, JAN_1 - timedelta(hours=3)) == 0

    def test_started_days_count(self):
        assert overdue_days(JAN_1, JAN_1 + timedelta(minutes=1)) == 1
        assert overdue_days(JAN_1, JAN_1 + timedelta(days=2, hours=1)) == 3

    def test_grace_period(self):
        assert overdue_days(JAN_1, JAN_1 + timedelta(days=2), grace_period_days=2) == 0
        assert overdue_days(JAN_1, JAN_1 + timedelta(days=5), grace_period_days=2) == 3

    def test_money_rounding(self):
        assert to_money(0.1 + 0.2) == Decimal("0.30")
        assert to_money("2.005") == Decimal("2.01")


class TestOverdueFine:

    def test_issued_once_per_loan(self, ledger, late_loan, fine):
        again = ledger.create_for_overdue_return(late_loan, 9, Decimal("1.00"))
        assert again.fine_id == fine.fine_id
        assert len(late_loan.fines) == 1

    def test_fields(self, fine, late_loan):
        assert fine.fine_type == FineType.OVERDUE.value
        assert fine.amount == Decimal("5.00")
        assert fine.loan_id == late_loan.loan_id
        assert fine.outstanding == Decimal("5.00")

    def test_rate_comes_from_configuration(self, db, member, copy):
        update_configuration(db, {"daily_fine_amount": 0.25})
        service = LoanService(db)
        loan = service.create_loan(member.user_id, copy.copy_id, loan_date=JAN_1, now=JAN_1)
        returned_at = JAN_1 + timedelta(days=24)
        loan = service.return_loan(loan.loan_id, return_date=returned_at, now=returned_at)
        assert loan.fines[0].amount == Decimal("2.50")


class TestPayments:

    def test_partial_then_full_payment(self, ledger, fine):
        fine = ledger.record_payment(fine.fine_id, 2, now=JAN_1)
        assert fine.status == FineStatus.PENDING.value
        assert fine.paid_amount == Decimal("2.00")
        assert fine.paid_date is None

        paid_at = datetime(2024, 2, 1, tzinfo=timezone.utc)
        fine = ledger.record_payment(fine.fine_id, 3, paid_date=paid_at)
        assert fine.status == FineStatus.PAID.value
        assert fine.paid_amount == Decimal("5.00")
        assert fine.paid_date == paid_at

    def test_overpayment_is_capped_by_default(self, ledger, fine):
        fine = ledger.record_payment(fine.fine_id, 10, now=JAN_1)
        assert fine.paid_amount == fine.amount
        assert fine.status == FineStatus.PAID.value

    def test_overpayment_can_be_rejected(self, db, ledger, fine):
        update_configuration(db, {"reject_fine_overpayment": True})
        with pytest.raises(OverpaymentRejected):
            ledger.record_payment(fine.fine_id, 10, now=JAN_1)

        fine = ledger.get(fine.fine_id)
        assert fine.paid_amount == Decimal("0.00")
        assert fine.status == FineStatus.PENDING.value

    def test_non_positive_payment(self, ledger, fine):
        with pytest.raises(ValidationError):
            ledger.record_payment(fine.fine_id, 0, now=JAN_1)

    def test_paid_fine_takes_no_more_payments(self, ledger, fine):
        ledger.record_payment(fine.fine_id, 5, now=JAN_1)
        with pytest.raises(FineNotPending):
            ledger.record_payment(fine.fine_id, 1, now=JAN_1)

    def test_paying_clears_borrowing_block(self, db, ledger, fine, member):
        loans = LoanService(db)
        assert loans.borrowing_blockers(member, JAN_1)
        ledger.record_payment(fine.fine_id, 5, now=JAN_1)
        assert loans.borrowing_blockers(member, JAN_1) == []


class TestWaive:

    def test_waive_pending_fine(self, ledger, fine):
        fine = ledger.waive(fine.fine_id, "First offence")
        assert fine.status == FineStatus.WAIVED.value
        assert "First offence" in fine.notes

    def test_waive_twice(self, ledger, fine):
        ledger.waive(fine.fine_id)
        with pytest.raises(FineNotPending):
            ledger.waive(fine.fine_id)

    def test_waived_fine_takes_no_payment(self, ledger, fine):
        ledger.waive(fine.fine_id)
        with pytest.raises(FineNotPending):
            ledger.record_payment(fine.fine_id, 1, now=JAN_1)


class TestApplyUpdate:

    def test_paid_amount_is_cumulative(self, ledger, fine):
        ledger.apply_update(fine.fine_id, paid_amount=2, now=JAN_1)
        fine = ledger.apply_update(fine.fine_id, paid_amount=3.5, now=JAN_1)
        assert fine.paid_amount == Decimal("3.50")
        assert fine.status == FineStatus.PENDING.value

    def test_paid_amount_cannot_decrease(self, ledger, fine):
        ledger.apply_update(fine.fine_id, paid_amount=3, now=JAN_1)
        with pytest.raises(ValidationError):
            ledger.apply_update(fine.fine_id, paid_amount=1, now=JAN_1)

    def test_status_paid_settles_remainder(self, ledger, fine):
        ledger.apply_update(fine.fine_id, paid_amount=1, now=JAN_1)
        fine = ledger.apply_update(fine.fine_id, status=FineStatus.PAID, now=JAN_1)
        assert fine.paid_amount == Decimal("5.00")
        assert fine.status == FineStatus.PAID.value

    def test_status_waived(self, ledger, fine):
        fine = ledger.apply_update(fine.fine_id, status=FineStatus.WAIVED, notes="Hardship")
        assert fine.status == FineStatus.WAIVED.value

    def test_cannot_reopen(self, ledger, fine):
        ledger.waive(fine.fine_id)
        with pytest.raises(FineNotPending):
            ledger.apply_update(fine.fine_id, status=FineStatus.PENDING)


class TestManualFines:

    def test_damage_fine(self, ledger, late_loan, librarian):
        fine = ledger.create_manual(late_loan.loan_id, 12.5, "Water damage",
                                    fine_type=FineType.DAMAGE, issued_by=librarian.user_id)
        assert fine.amount == Decimal("12.50")
        assert fine.status == FineStatus.PENDING.value
        assert fine.issued_by == librarian.user_id

    def test_overdue_type_is_reserved(self, ledger, late_loan):
        with pytest.raises(ValidationError):
            ledger.create_manual(late_loan.loan_id, 1, "Late", fine_type=FineType.OVERDUE)

    def test_unknown_loan(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.create_manual(9999, 1, "Nothing to attach to")


class TestQueries:

    def test_list_and_stats(self, ledger, fine, member):
        ledger.record_payment(fine.fine_id, 2, now=JAN_1)

        page = ledger.list_fines(member_id=member.user_id)
        assert page["total"] == 1
        assert page["fines"][0]["memberId"] == str(member.user_id)

        assert ledger.member_stats(member.user_id) == {
            "totalFines": 5.0,
            "unpaidFines": 3.0,
            "fineCount": 1,
        }
        assert ledger.list_fines(status=FineStatus.PAID)["total"] == 0
