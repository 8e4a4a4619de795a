from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from circulation.database import get_db
from circulation.models.enums import ReservationStatus, Role
from circulation.models.user import User
from circulation.services.auth import (
    get_current_user,
    require_librarian,
    scoped_member_id,
    ensure_owner_or_librarian,
)
from circulation.services.reservations import ReservationService
from circulation.schemas.reservation import (
    ReservationCreate,
    ReservationStatusUpdate,
    ReservationResponse,
    ReservationPage,
    ReservationBatchResult,
    ReservationStats,
)

router = APIRouter(prefix="/reservations", tags=["Reservations"])

@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    reservation_data: ReservationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Join the hold queue for a material. Members always reserve for themselves."""
    if current_user.user_role == Role.MEMBER.value:
        member_id = current_user.user_id
    elif reservation_data.member_id is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="memberId is required when a librarian creates a reservation"
        )
    else:
        member_id = reservation_data.member_id

    service = ReservationService(db)
    reservation = service.create_reservation(member_id, reservation_data.material_id, notes=reservation_data.notes)
    return ReservationResponse.model_validate(service.to_dict(reservation))

@router.get("", response_model=ReservationPage)
async def list_reservations(
    member_id: Optional[int] = Query(None, alias="memberId"),
    material_id: Optional[int] = Query(None, alias="materialId"),
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100, alias="pageSize"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List reservations. Members only see their own."""
    return ReservationService(db).list_reservations(
        member_id=scoped_member_id(current_user, member_id),
        material_id=material_id,
        status=reservation_status,
        page=page,
        page_size=page_size,
    )

@router.post("/update-expired", response_model=ReservationBatchResult)
async def update_expired_reservations(
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Expire READY reservations whose hold window has passed."""
    return ReservationService(db).expire_reservations()

@router.get("/stats/{member_id}", response_model=ReservationStats)
async def get_member_reservation_stats(
    member_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ensure_owner_or_librarian(current_user, member_id, "reservation stats")
    return ReservationService(db).member_stats(member_id)

@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = ReservationService(db)
    reservation = service.get(reservation_id)
    ensure_owner_or_librarian(current_user, reservation.member_id, "reservations")
    return ReservationResponse.model_validate(service.to_dict(reservation))

@router.patch("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation_status(
    reservation_id: int,
    update_data: ReservationStatusUpdate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Librarian status change: assign a copy, hand over, cancel or expire."""
    service = ReservationService(db)
    reservation = service.update_status(
        reservation_id,
        update_data.status,
        copy_id=update_data.copy_id,
        expiration_date=update_data.expiration_date,
        notes=update_data.notes,
        processed_by=current_user.user_id,
    )
    return ReservationResponse.model_validate(service.to_dict(reservation))

@router.post("/{reservation_id}/confirm-pickup", response_model=ReservationResponse)
async def confirm_pickup(
    reservation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Turn a READY reservation into a loan on the held copy."""
    service = ReservationService(db)
    ensure_owner_or_librarian(current_user, service.get(reservation_id).member_id, "reservations")
    processed_by = current_user.user_id if current_user.is_librarian else None
    reservation = service.confirm_pickup(reservation_id, processed_by=processed_by)
    return ReservationResponse.model_validate(service.to_dict(reservation))

@router.delete("/{reservation_id}", response_model=ReservationResponse)
async def cancel_reservation(
    reservation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Cancel a PENDING or READY reservation; a held copy passes to the next in line."""
    service = ReservationService(db)
    ensure_owner_or_librarian(current_user, service.get(reservation_id).member_id, "reservations")
    reservation = service.cancel(reservation_id)
    return ReservationResponse.model_validate(service.to_dict(reservation))
