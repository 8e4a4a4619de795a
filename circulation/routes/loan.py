from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from circulation.database import get_db
from circulation.models.enums import LoanStatus
from circulation.models.user import User
from circulation.services.auth import (
    get_current_user,
    require_librarian,
    scoped_member_id,
    ensure_owner_or_librarian,
)
from circulation.services.loans import LoanService
from circulation.schemas.loan import (
    LoanCreate,
    LoanReturn,
    LoanResponse,
    LoanPage,
    LoanStats,
    BatchResult,
)

router = APIRouter(prefix="/loans", tags=["Loans"])

@router.post("", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
async def create_loan(
    loan_data: LoanCreate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Check a copy out to a member. Librarian confirms the hand-off."""
    loan = LoanService(db).create_loan(
        member_id=loan_data.member_id,
        copy_id=loan_data.copy_id,
        loan_date=loan_data.loan_date,
        notes=loan_data.notes,
        processed_by=current_user.user_id,
    )
    return LoanResponse.model_validate(loan.to_dict())

@router.get("", response_model=LoanPage)
async def list_loans(
    member_id: Optional[int] = Query(None, alias="memberId"),
    loan_status: Optional[LoanStatus] = Query(None, alias="status"),
    overdue: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List loans. Members only see their own."""
    return LoanService(db).list_loans(
        member_id=scoped_member_id(current_user, member_id),
        status=loan_status,
        overdue=overdue,
        page=page,
        page_size=page_size,
    )

@router.post("/update-overdue", response_model=BatchResult)
async def update_overdue_loans(
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Flag every ACTIVE loan past its due date as OVERDUE."""
    return LoanService(db).mark_overdue()

@router.get("/stats/{member_id}", response_model=LoanStats)
async def get_member_loan_stats(
    member_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Loan counters and borrowing eligibility for a member."""
    ensure_owner_or_librarian(current_user, member_id, "loan stats")
    return LoanService(db).member_stats(member_id)

@router.get("/{loan_id}", response_model=LoanResponse)
async def get_loan(
    loan_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get specific loan details."""
    loan = LoanService(db).get(loan_id)
    ensure_owner_or_librarian(current_user, loan.member_id, "loans")
    return LoanResponse.model_validate(loan.to_dict())

@router.post("/{loan_id}/renew", response_model=LoanResponse)
async def renew_loan(
    loan_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Extend the due date by one loan period."""
    service = LoanService(db)
    ensure_owner_or_librarian(current_user, service.get(loan_id).member_id, "loans")
    loan = service.renew_loan(loan_id)
    return LoanResponse.model_validate(loan.to_dict())

@router.post("/{loan_id}/return", response_model=LoanResponse)
async def return_loan(
    loan_id: int,
    return_data: Optional[LoanReturn] = None,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Check a copy back in; issues the overdue fine and serves the reservation queue."""
    return_data = return_data or LoanReturn()
    loan = LoanService(db).return_loan(
        loan_id,
        return_date=return_data.return_date,
        condition=return_data.condition,
    )
    return LoanResponse.model_validate(loan.to_dict())
