"""
Tests for the reservation queue.

A material with a single copy on loan is the usual starting point: members
queue for it, the return hands the copy to the head of the queue, and
expiry or cancellation passes it on.
"""
from datetime import datetime, timedelta, timezone

import pytest

from circulation.models import Loan, MaterialCopy, Notification
from circulation.models.enums import (
    CopyCondition,
    CopyStatus,
    LoanStatus,
    NotificationType,
    ReservationStatus,
)
from circulation.services.errors import (
    CopyUnavailable,
    DuplicateReservation,
    NotFoundError,
    ReservationExpired,
    ReservationNotActive,
    ReservationNotReady,
    ValidationError,
)
from circulation.services.catalog import update_copy
from circulation.services.loans import LoanService
from circulation.services.reservations import ReservationService

from conftest import JAN_1


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def service(db):
    return ReservationService(db)


@pytest.fixture
def lent_copy(db, make_member, copy):
    """The material's only copy, lent to a third member on Jan 1."""
    borrower = make_member("borrower@example.org")
    loan = LoanService(db).create_loan(borrower.user_id, copy.copy_id, loan_date=JAN_1, now=JAN_1)
    return copy, loan


def notifications_for(db, user, notification_type):
    return db.query(Notification).filter(
        Notification.user_id == user.user_id,
        Notification.notification_type == notification_type.value
    ).all()


class TestCreateReservation:

    def test_queue_positions_follow_arrival(self, service, make_member, material, lent_copy):
        first, second = make_member(), make_member()
        a = service.create_reservation(first.user_id, material.material_id, now=utc(2024, 1, 2))
        b = service.create_reservation(second.user_id, material.material_id, now=utc(2024, 1, 3))

        assert a.status == ReservationStatus.PENDING.value
        assert b.status == ReservationStatus.PENDING.value
        assert service.queue.position(a) == 1
        assert service.queue.position(b) == 2
        assert service.to_dict(b)["queuePosition"] == 2

    def test_same_instant_is_ordered_by_id(self, service, make_member, material, lent_copy):
        first, second = make_member(), make_member()
        at = utc(2024, 1, 2)
        a = service.create_reservation(first.user_id, material.material_id, now=at)
        b = service.create_reservation(second.user_id, material.material_id, now=at)
        assert [service.queue.position(a), service.queue.position(b)] == [1, 2]

    def test_duplicate_open_reservation(self, service, member, material, lent_copy):
        service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        with pytest.raises(DuplicateReservation):
            service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 3))

    def test_can_reserve_again_after_cancelling(self, service, member, material, lent_copy):
        first = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        service.cancel(first.reservation_id, now=utc(2024, 1, 3))
        again = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 4))
        assert again.status == ReservationStatus.PENDING.value

    def test_available_copy_is_held_immediately(self, db, service, member, material, copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)

        assert reservation.status == ReservationStatus.READY.value
        assert reservation.copy_id == copy.copy_id
        assert reservation.expiration_date == JAN_1 + timedelta(days=7)
        db.refresh(copy)
        assert copy.status == CopyStatus.RESERVED.value

    def test_unknown_material(self, service, member):
        with pytest.raises(NotFoundError):
            service.create_reservation(member.user_id, 9999, now=JAN_1)

    def test_damaged_copy_is_not_held(self, db, service, member, material, copy):
        update_copy(db, copy.copy_id, {"condition": CopyCondition.DAMAGED}, now=JAN_1)
        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)

        assert reservation.status == ReservationStatus.PENDING.value
        assert reservation.copy_id is None
        db.refresh(copy)
        assert copy.status == CopyStatus.AVAILABLE.value

    def test_lendable_copy_is_preferred_over_damaged_one(self, db, service, member, make_material):
        material = make_material(title="Solaris", copies=2)
        damaged, sound = sorted(material.copies, key=lambda c: c.copy_id)
        update_copy(db, damaged.copy_id, {"condition": CopyCondition.DAMAGED}, now=JAN_1)

        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)
        assert reservation.status == ReservationStatus.READY.value
        assert reservation.copy_id == sound.copy_id

        reservation = service.confirm_pickup(reservation.reservation_id, now=utc(2024, 1, 2))
        assert reservation.status == ReservationStatus.PICKED_UP.value

    def test_repaired_copy_serves_the_queue(self, db, service, member, material, copy):
        update_copy(db, copy.copy_id, {"condition": CopyCondition.DAMAGED}, now=JAN_1)
        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)

        update_copy(db, copy.copy_id, {"condition": CopyCondition.GOOD}, now=utc(2024, 1, 3))

        reservation = service.get(reservation.reservation_id)
        assert reservation.status == ReservationStatus.READY.value
        assert reservation.copy_id == copy.copy_id
        assert reservation.expiration_date == utc(2024, 1, 10)


class TestPromotion:

    def test_return_promotes_head_of_queue(self, db, service, make_member, material, lent_copy):
        copy, loan = lent_copy
        first, second = make_member(), make_member()
        a = service.create_reservation(first.user_id, material.material_id, now=utc(2024, 1, 2))
        b = service.create_reservation(second.user_id, material.material_id, now=utc(2024, 1, 3))

        returned_at = utc(2024, 1, 10, 9)
        LoanService(db).return_loan(loan.loan_id, now=returned_at)

        a, b = service.get(a.reservation_id), service.get(b.reservation_id)
        assert a.status == ReservationStatus.READY.value
        assert a.copy_id == copy.copy_id
        assert a.expiration_date == returned_at + timedelta(days=7)
        assert b.status == ReservationStatus.PENDING.value
        assert service.queue.position(b) == 2

        db.refresh(copy)
        assert copy.status == CopyStatus.RESERVED.value
        assert len(notifications_for(db, first, NotificationType.RESERVATION_READY)) == 1

    def test_empty_queue_leaves_copy_available(self, db, lent_copy):
        copy, loan = lent_copy
        LoanService(db).return_loan(loan.loan_id, now=utc(2024, 1, 10))
        db.refresh(copy)
        assert copy.status == CopyStatus.AVAILABLE.value


class TestConfirmPickup:

    def test_pickup_opens_loan_on_held_copy(self, db, service, member, material, copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)
        reservation = service.confirm_pickup(reservation.reservation_id, now=utc(2024, 1, 3))

        assert reservation.status == ReservationStatus.PICKED_UP.value
        assert reservation.picked_up_at == utc(2024, 1, 3)
        loan = db.query(Loan).filter(Loan.loan_id == reservation.loan_id).one()
        assert loan.member_id == member.user_id
        assert loan.copy_id == copy.copy_id
        assert loan.status == LoanStatus.ACTIVE.value
        db.refresh(copy)
        assert copy.status == CopyStatus.BORROWED.value

    def test_pending_reservation_is_not_ready(self, service, member, material, lent_copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        with pytest.raises(ReservationNotReady):
            service.confirm_pickup(reservation.reservation_id, now=utc(2024, 1, 3))

    def test_pickup_after_hold_window(self, service, member, material, copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)
        with pytest.raises(ReservationExpired):
            service.confirm_pickup(reservation.reservation_id, now=JAN_1 + timedelta(days=8))
        assert service.get(reservation.reservation_id).status == ReservationStatus.READY.value


class TestExpireReservations:

    def test_expiry_cascades_to_next_in_line(self, db, service, make_member, material, lent_copy):
        copy, loan = lent_copy
        first, second = make_member(), make_member()
        a = service.create_reservation(first.user_id, material.material_id, now=utc(2024, 1, 2))
        b = service.create_reservation(second.user_id, material.material_id, now=utc(2024, 1, 3))
        LoanService(db).return_loan(loan.loan_id, now=utc(2024, 1, 10))

        result = service.expire_reservations(now=utc(2024, 1, 18))

        assert result == {"updated": 1, "reservationIds": [str(a.reservation_id)]}
        a, b = service.get(a.reservation_id), service.get(b.reservation_id)
        assert a.status == ReservationStatus.EXPIRED.value
        assert b.status == ReservationStatus.READY.value
        assert b.copy_id == copy.copy_id
        assert b.expiration_date == utc(2024, 1, 25)
        db.refresh(copy)
        assert copy.status == CopyStatus.RESERVED.value
        assert len(notifications_for(db, first, NotificationType.RESERVATION_EXPIRED)) == 1

    def test_expiry_without_queue_frees_copy(self, db, service, member, material, copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)
        service.expire_reservations(now=JAN_1 + timedelta(days=8))

        assert service.get(reservation.reservation_id).status == ReservationStatus.EXPIRED.value
        db.refresh(copy)
        assert copy.status == CopyStatus.AVAILABLE.value

    def test_nothing_to_expire_inside_window(self, service, member, material, copy):
        service.create_reservation(member.user_id, material.material_id, now=JAN_1)
        assert service.expire_reservations(now=JAN_1 + timedelta(days=6)) == {"updated": 0, "reservationIds": []}

    def test_failed_row_does_not_stop_the_batch(self, monkeypatch, service, make_member, make_material):
        material = make_material(title="Solaris", copies=2)
        first, second = make_member(), make_member()
        stuck = service.create_reservation(first.user_id, material.material_id, now=JAN_1)
        expiring = service.create_reservation(second.user_id, material.material_id, now=JAN_1)

        real_close = ReservationService._close

        def close_or_fail(self, reservation, status, now):
            if reservation.reservation_id == stuck.reservation_id:
                raise RuntimeError("lock timeout")
            return real_close(self, reservation, status, now)

        monkeypatch.setattr(ReservationService, "_close", close_or_fail)
        result = service.expire_reservations(now=JAN_1 + timedelta(days=8))

        assert result == {"updated": 1, "reservationIds": [str(expiring.reservation_id)]}
        assert service.get(stuck.reservation_id).status == ReservationStatus.READY.value
        assert service.get(expiring.reservation_id).status == ReservationStatus.EXPIRED.value


class TestCancel:

    def test_cancel_ready_passes_copy_on(self, db, service, make_member, material, copy):
        first, second = make_member(), make_member()
        a = service.create_reservation(first.user_id, material.material_id, now=utc(2024, 1, 2))
        b = service.create_reservation(second.user_id, material.material_id, now=utc(2024, 1, 3))
        assert a.status == ReservationStatus.READY.value

        a = service.cancel(a.reservation_id, now=utc(2024, 1, 4))

        assert a.status == ReservationStatus.CANCELLED.value
        assert a.cancelled_at == utc(2024, 1, 4)
        b = service.get(b.reservation_id)
        assert b.status == ReservationStatus.READY.value
        assert b.copy_id == copy.copy_id

    def test_cancel_ready_without_queue_frees_copy(self, db, service, member, material, copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=JAN_1)
        service.cancel(reservation.reservation_id, now=utc(2024, 1, 2))
        db.refresh(copy)
        assert copy.status == CopyStatus.AVAILABLE.value

    def test_cancel_twice(self, service, member, material, lent_copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        service.cancel(reservation.reservation_id, now=utc(2024, 1, 3))
        with pytest.raises(ReservationNotActive):
            service.cancel(reservation.reservation_id, now=utc(2024, 1, 4))


class TestUpdateStatus:

    def test_manual_ready_needs_copy(self, service, member, material, lent_copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        with pytest.raises(ValidationError):
            service.update_status(reservation.reservation_id, ReservationStatus.READY, now=utc(2024, 1, 3))

    def test_manual_ready_rejects_borrowed_copy(self, service, member, material, lent_copy):
        copy, _ = lent_copy
        reservation = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        with pytest.raises(CopyUnavailable):
            service.update_status(reservation.reservation_id, ReservationStatus.READY,
                                  copy_id=copy.copy_id, now=utc(2024, 1, 3))

    def test_manual_ready_on_spare_copy(self, db, service, member, material, lent_copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        spare = MaterialCopy(material_id=material.material_id, condition="GOOD",
                             status=CopyStatus.AVAILABLE.value, acquisition_date=JAN_1)
        db.add(spare)
        db.commit()

        reservation = service.update_status(reservation.reservation_id, ReservationStatus.READY,
                                            copy_id=spare.copy_id, now=utc(2024, 1, 3))
        assert reservation.status == ReservationStatus.READY.value
        assert reservation.copy_id == spare.copy_id
        assert reservation.expiration_date == utc(2024, 1, 10)

    def test_closed_reservation_cannot_change(self, service, member, material, lent_copy):
        reservation = service.create_reservation(member.user_id, material.material_id, now=utc(2024, 1, 2))
        service.cancel(reservation.reservation_id, now=utc(2024, 1, 3))
        with pytest.raises(ReservationNotActive):
            service.update_status(reservation.reservation_id, ReservationStatus.EXPIRED, now=utc(2024, 1, 4))

    def test_stats(self, service, make_member, material, copy):
        first = make_member()
        service.create_reservation(first.user_id, material.material_id, now=JAN_1)
        assert service.member_stats(first.user_id) == {
            "activeReservations": 1,
            "readyForPickup": 1,
            "totalReservations": 1,
        }
