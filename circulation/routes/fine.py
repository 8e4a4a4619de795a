from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from circulation.database import get_db
from circulation.models.enums import FineStatus
from circulation.models.user import User
from circulation.services.auth import (
    get_current_user,
    require_librarian,
    scoped_member_id,
    ensure_owner_or_librarian,
)
from circulation.services.fines import FineLedger
from circulation.schemas.fine import (
    FineCreate,
    FineUpdate,
    FinePayment,
    FineWaiver,
    FineResponse,
    FinePage,
    FineStats,
)

router = APIRouter(prefix="/fines", tags=["Fines"])

@router.post("", response_model=FineResponse, status_code=status.HTTP_201_CREATED)
async def create_fine(
    fine_data: FineCreate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Issue a damage, loss or other fine against a loan."""
    fine = FineLedger(db).create_manual(
        fine_data.loan_id,
        fine_data.amount,
        fine_data.reason,
        fine_type=fine_data.fine_type,
        notes=fine_data.notes,
        issued_by=current_user.user_id,
    )
    return FineResponse.model_validate(fine.to_dict())

@router.get("", response_model=FinePage)
async def list_fines(
    member_id: Optional[int] = Query(None, alias="memberId"),
    fine_status: Optional[FineStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return FineLedger(db).list_fines(
        member_id=scoped_member_id(current_user, member_id),
        status=fine_status,
        page=page,
        page_size=page_size,
    )

@router.get("/stats/{member_id}", response_model=FineStats)
async def get_member_fine_stats(
    member_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ensure_owner_or_librarian(current_user, member_id, "fine stats")
    return FineLedger(db).member_stats(member_id)

@router.get("/{fine_id}", response_model=FineResponse)
async def get_fine(
    fine_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    fine = FineLedger(db).get(fine_id)
    ensure_owner_or_librarian(current_user, fine.loan.member_id, "fines")
    return FineResponse.model_validate(fine.to_dict())

@router.patch("/{fine_id}", response_model=FineResponse)
async def update_fine(
    fine_id: int,
    update_data: FineUpdate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Record a payment (cumulative paidAmount) or waive a fine."""
    fine = FineLedger(db).apply_update(
        fine_id,
        paid_amount=update_data.paid_amount,
        status=update_data.status,
        paid_date=update_data.paid_date,
        notes=update_data.notes,
    )
    return FineResponse.model_validate(fine.to_dict())

@router.post("/{fine_id}/payments", response_model=FineResponse)
async def record_fine_payment(
    fine_id: int,
    payment: FinePayment,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Add a payment to the amount already paid."""
    fine = FineLedger(db).record_payment(fine_id, payment.amount, paid_date=payment.paid_date)
    return FineResponse.model_validate(fine.to_dict())

@router.post("/{fine_id}/waive", response_model=FineResponse)
async def waive_fine(
    fine_id: int,
    waiver: Optional[FineWaiver] = None,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    fine = FineLedger(db).waive(fine_id, waiver.reason if waiver else None)
    return FineResponse.model_validate(fine.to_dict())
