"""FIFO hold queue per material.

Queue positions are never stored: they are counted on read with a stable
(reservation_date, reservation_id) order, so cancellations and promotions
never renumber rows.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from circulation.models.enums import CopyStatus, NotificationType, ReservationStatus
from circulation.models.reservation import Reservation
from circulation.services import notifications
from circulation.services.copies import claim_copy, get_copy, is_lendable
from circulation.services.errors import CopyUnavailable
from circulation.services.loan_config import get_configuration
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)


class ReservationQueue:

    def __init__(self, db: Session):
        self.db = db

    def position(self, reservation: Reservation) -> Optional[int]:
        """1-based place among the material's open reservations, None once terminal."""
        if reservation.status not in ReservationStatus.open_statuses():
            return None
        ahead = self.db.query(Reservation).filter(
            Reservation.material_id == reservation.material_id,
            Reservation.status.in_(ReservationStatus.open_statuses()),
            or_(
                Reservation.reservation_date < reservation.reservation_date,
                and_(
                    Reservation.reservation_date == reservation.reservation_date,
                    Reservation.reservation_id < reservation.reservation_id,
                ),
            ),
        ).count()
        return ahead + 1

    def _pending(self, material_id: int):
        return self.db.query(Reservation).filter(
            Reservation.material_id == material_id,
            Reservation.status == ReservationStatus.PENDING.value
        ).order_by(Reservation.reservation_date.asc(), Reservation.reservation_id.asc())

    def promote_next(self, material_id: int, copy_id: int, now: Optional[datetime] = None) -> Optional[Reservation]:
        """Hold an AVAILABLE copy for the oldest PENDING reservation of the material.

        No-op on an empty queue, leaving the copy AVAILABLE. Copies in DAMAGED
        or LOST condition are never held. Runs inside the caller's transaction.
        """
        now = now or now_local()
        if not is_lendable(get_copy(self.db, copy_id)):
            logger.info(f"Copy {copy_id} is not in lendable condition; not held for the queue")
            return None
        for candidate in self._pending(material_id).with_for_update().all():
            if not claim_copy(self.db, copy_id, CopyStatus.AVAILABLE, CopyStatus.RESERVED):
                raise CopyUnavailable(f"Material copy {copy_id} is no longer available")

            hold_days = get_configuration(self.db).reservation_hold_days
            expiration_date = now + timedelta(days=hold_days)
            promoted = self.db.query(Reservation).filter(
                Reservation.reservation_id == candidate.reservation_id,
                Reservation.status == ReservationStatus.PENDING.value
            ).update({
                "status": ReservationStatus.READY.value,
                "copy_id": copy_id,
                "expiration_date": expiration_date,
            }, synchronize_session="evaluate")

            if promoted == 0:
                # Cancelled concurrently; give the copy back and try the next one
                claim_copy(self.db, copy_id, CopyStatus.RESERVED, CopyStatus.AVAILABLE)
                continue

            self.db.refresh(candidate)
            notifications.notify(
                self.db,
                candidate.member_id,
                NotificationType.RESERVATION_READY,
                "Reservation ready for pickup",
                f"'{candidate.material.title}' is ready for pickup until {expiration_date.date().isoformat()}.",
            )
            logger.info(
                f"Reservation {candidate.reservation_id} promoted to READY on copy {copy_id} "
                f"(expires {expiration_date.isoformat()})"
            )
            return candidate

        logger.debug(f"No pending reservations for material {material_id}; copy {copy_id} stays available")
        return None

    def release_copy(self, copy_id: int, now: Optional[datetime] = None) -> Optional[Reservation]:
        """Return a held copy to the shelf and offer it to the next reservation in line."""
        if not claim_copy(self.db, copy_id, CopyStatus.RESERVED, CopyStatus.AVAILABLE):
            logger.warning(f"Copy {copy_id} was not RESERVED when released; leaving its status untouched")
            return None
        copy = get_copy(self.db, copy_id)
        return self.promote_next(copy.material_id, copy_id, now=now)
