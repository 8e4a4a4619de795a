import logging
import math
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from circulation.database import transaction
from circulation.models.enums import CopyStatus, NotificationType, ReservationStatus
from circulation.models.material import Material
from circulation.models.reservation import Reservation
from circulation.services import notifications
from circulation.services.copies import claim_copy, first_lendable_copy, get_copy, is_lendable
from circulation.services.errors import (
    NotFoundError,
    ValidationError,
    CopyUnavailable,
    DuplicateReservation,
    ReservationExpired,
    ReservationNotActive,
    ReservationNotReady,
)
from circulation.services.loan_config import get_configuration
from circulation.services.loans import LoanService, get_member
from circulation.services.queue import ReservationQueue
from circulation.utils.timezone import now_local, ensure_aware

logger = logging.getLogger(__name__)


class ReservationService:

    def __init__(self, db: Session):
        self.db = db
        self.queue = ReservationQueue(db)
        self.loans = LoanService(db)

    def get(self, reservation_id: int) -> Reservation:
        reservation = self.db.query(Reservation).filter(Reservation.reservation_id == reservation_id).first()
        if not reservation:
            raise NotFoundError(f"Reservation with ID {reservation_id} not found")
        return reservation

    def _lock(self, reservation_id: int) -> Reservation:
        reservation = self.db.query(Reservation).filter(
            Reservation.reservation_id == reservation_id
        ).with_for_update().first()
        if not reservation:
            raise NotFoundError(f"Reservation with ID {reservation_id} not found")
        return reservation

    def to_dict(self, reservation: Reservation) -> dict:
        return reservation.to_dict(queue_position=self.queue.position(reservation))

    def create_reservation(self, member_id: int, material_id: int, notes: Optional[str] = None,
                           now: Optional[datetime] = None) -> Reservation:
        """Join the material's queue. Promoted straight to READY when a copy is on the shelf."""
        now = now or now_local()
        try:
            with transaction(self.db):
                material = self.db.query(Material).filter(Material.material_id == material_id).first()
                if not material:
                    raise NotFoundError(f"Material with ID {material_id} not found")
                get_member(self.db, member_id)

                existing = self.db.query(Reservation).filter(
                    Reservation.member_id == member_id,
                    Reservation.material_id == material_id,
                    Reservation.status.in_(ReservationStatus.open_statuses())
                ).first()
                if existing:
                    raise DuplicateReservation("Member already has an active reservation for this material")

                reservation = Reservation(
                    member_id=member_id,
                    material_id=material_id,
                    status=ReservationStatus.PENDING.value,
                    reservation_date=now,
                    notes=notes,
                )
                self.db.add(reservation)
                self.db.flush()
                logger.info(f"Reservation {reservation.reservation_id} queued: member {member_id}, material {material_id}")

                available = first_lendable_copy(self.db, material_id)
                if available:
                    self.queue.promote_next(material_id, available.copy_id, now=now)
        except IntegrityError:
            raise DuplicateReservation("Member already has an active reservation for this material")
        self.db.refresh(reservation)
        return reservation

    def confirm_pickup(self, reservation_id: int, processed_by: Optional[int] = None,
                       now: Optional[datetime] = None) -> Reservation:
        """Hand the held copy over: opens a loan and closes the reservation as PICKED_UP."""
        now = now or now_local()
        with transaction(self.db):
            reservation = self._lock(reservation_id)
            self._pickup(reservation, processed_by, now)
        self.db.refresh(reservation)
        return reservation

    def _pickup(self, reservation: Reservation, processed_by: Optional[int], now: datetime):
        if reservation.status != ReservationStatus.READY.value:
            raise ReservationNotReady(
                f"Only READY reservations can be picked up. Current status: {reservation.status}"
            )
        if reservation.expiration_date is not None and now > reservation.expiration_date:
            raise ReservationExpired("The hold window for this reservation has passed")

        loan = self.loans.open_loan(
            reservation.member_id,
            reservation.copy_id,
            CopyStatus.RESERVED,
            processed_by=processed_by,
            notes=f"Reservation {reservation.reservation_id} pickup",
            now=now,
        )
        reservation.status = ReservationStatus.PICKED_UP.value
        reservation.picked_up_at = now
        reservation.loan_id = loan.loan_id
        logger.info(f"Reservation {reservation.reservation_id} picked up as loan {loan.loan_id}")

    def cancel(self, reservation_id: int, now: Optional[datetime] = None) -> Reservation:
        now = now or now_local()
        with transaction(self.db):
            reservation = self._lock(reservation_id)
            self._close(reservation, ReservationStatus.CANCELLED, now)
        self.db.refresh(reservation)
        return reservation

    def _close(self, reservation: Reservation, status: ReservationStatus, now: datetime):
        """Move an open reservation to CANCELLED or EXPIRED and pass its copy on."""
        previous = reservation.status
        closed = self.db.query(Reservation).filter(
            Reservation.reservation_id == reservation.reservation_id,
            Reservation.status.in_(ReservationStatus.open_statuses())
        ).update({
            "status": status.value,
            "cancelled_at": now if status == ReservationStatus.CANCELLED else None,
        }, synchronize_session="evaluate")
        if closed == 0:
            raise ReservationNotActive(
                f"Reservation is already {reservation.status} and cannot be {status.value.lower()}"
            )
        logger.info(f"Reservation {reservation.reservation_id} {previous} -> {status.value}")

        if previous == ReservationStatus.READY.value and reservation.copy_id:
            self.queue.release_copy(reservation.copy_id, now=now)

    def expire_reservations(self, now: Optional[datetime] = None) -> dict:
        """Expire READY reservations past their hold window, cascading the copy to the next in line."""
        now = now or now_local()
        candidate_ids = [row.reservation_id for row in self.db.query(Reservation.reservation_id).filter(
            Reservation.status == ReservationStatus.READY.value,
            Reservation.expiration_date < now
        ).order_by(Reservation.reservation_id).all()]
        self.db.rollback()

        updated_ids = []
        for reservation_id in candidate_ids:
            try:
                with transaction(self.db):
                    reservation = self._lock(reservation_id)
                    if reservation.status != ReservationStatus.READY.value or reservation.expiration_date >= now:
                        continue
                    self._close(reservation, ReservationStatus.EXPIRED, now)
                    notifications.notify(
                        self.db,
                        reservation.member_id,
                        NotificationType.RESERVATION_EXPIRED,
                        "Reservation expired",
                        f"Your hold on '{reservation.material.title}' expired before pickup.",
                    )
                updated_ids.append(reservation_id)
            except Exception as e:
                logger.error(f"Failed to expire reservation {reservation_id}: {e}", exc_info=True)

        if updated_ids:
            logger.info(f"Expired {len(updated_ids)} reservation(s)")
        return {"updated": len(updated_ids), "reservationIds": [str(rid) for rid in updated_ids]}

    def update_status(self, reservation_id: int, status: ReservationStatus, copy_id: Optional[int] = None,
                      expiration_date: Optional[datetime] = None, notes: Optional[str] = None,
                      processed_by: Optional[int] = None, now: Optional[datetime] = None) -> Reservation:
        """Librarian-driven status change."""
        now = now or now_local()
        with transaction(self.db):
            reservation = self._lock(reservation_id)
            if reservation.status not in ReservationStatus.open_statuses():
                raise ReservationNotActive(
                    "Cannot update a reservation that is already picked up, cancelled, or expired"
                )
            if notes is not None:
                reservation.notes = notes

            if status == ReservationStatus.READY:
                self._assign_copy(reservation, copy_id, ensure_aware(expiration_date), now)
            elif status == ReservationStatus.PICKED_UP:
                self._pickup(reservation, processed_by, now)
            elif status in (ReservationStatus.CANCELLED, ReservationStatus.EXPIRED):
                self._close(reservation, status, now)
            elif reservation.status != ReservationStatus.PENDING.value:
                raise ValidationError(
                    "A READY reservation cannot be moved back to PENDING",
                    errors=[{"field": "status", "message": "invalid transition"}],
                )
        self.db.refresh(reservation)
        return reservation

    def _assign_copy(self, reservation: Reservation, copy_id: Optional[int],
                     expiration_date: Optional[datetime], now: datetime):
        if copy_id is None:
            if reservation.status == ReservationStatus.READY.value and expiration_date:
                reservation.expiration_date = expiration_date
                return
            raise ValidationError(
                "Copy ID is required when marking reservation as ready",
                errors=[{"field": "copyId", "message": "required for READY"}],
            )

        copy = get_copy(self.db, copy_id)
        if copy.material_id != reservation.material_id:
            raise ValidationError(
                "Copy belongs to a different material",
                errors=[{"field": "copyId", "message": "must be a copy of the reserved material"}],
            )
        if not is_lendable(copy):
            raise CopyUnavailable(f"Material copy is in {copy.condition} condition and cannot be held")

        previous_copy_id = reservation.copy_id
        if previous_copy_id != copy_id:
            if not claim_copy(self.db, copy_id, CopyStatus.AVAILABLE, CopyStatus.RESERVED):
                raise CopyUnavailable(f"Material copy is not available. Current status: {copy.status}")

        hold_days = self.queue_hold_days()
        reservation.status = ReservationStatus.READY.value
        reservation.copy_id = copy_id
        reservation.expiration_date = expiration_date or now + hold_days
        self.db.flush()

        if previous_copy_id and previous_copy_id != copy_id:
            self.queue.release_copy(previous_copy_id, now=now)
        logger.info(f"Reservation {reservation.reservation_id} manually assigned copy {copy_id}")

    def queue_hold_days(self) -> timedelta:
        return timedelta(days=get_configuration(self.db).reservation_hold_days)

    def list_reservations(self, member_id: Optional[int] = None, material_id: Optional[int] = None,
                          status: Optional[ReservationStatus] = None, page: int = 1, page_size: int = 10) -> dict:
        query = self.db.query(Reservation)
        if member_id:
            query = query.filter(Reservation.member_id == member_id)
        if material_id:
            query = query.filter(Reservation.material_id == material_id)
        if status:
            query = query.filter(Reservation.status == status.value)

        total = query.count()
        reservations = query.order_by(Reservation.reservation_date.desc(), Reservation.reservation_id.desc()) \
            .offset((page - 1) * page_size).limit(page_size).all()
        return {
            "reservations": [self.to_dict(r) for r in reservations],
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "total": total,
                "totalPages": math.ceil(total / page_size) if total else 0,
            },
        }

    def member_stats(self, member_id: int) -> dict:
        base = self.db.query(Reservation).filter(Reservation.member_id == member_id)
        return {
            "activeReservations": base.filter(
                Reservation.status.in_(ReservationStatus.open_statuses())
            ).count(),
            "readyForPickup": base.filter(Reservation.status == ReservationStatus.READY.value).count(),
            "totalReservations": base.count(),
        }
