from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from circulation.database import get_db
from circulation.models.enums import AccountState
from circulation.models.user import User
from circulation.services import members
from circulation.services.auth import require_librarian
from circulation.services.loans import get_member
from circulation.schemas.auth import UserResponse

router = APIRouter(prefix="/members", tags=["Members"])

@router.get("", response_model=List[UserResponse])
async def list_members(
    search: Optional[str] = Query(None, description="Search by name or email"),
    account_state: Optional[AccountState] = Query(None, alias="accountState"),
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    return [UserResponse.model_validate(m.to_dict()) for m in members.list_members(db, search, account_state)]

@router.get("/{member_id}", response_model=UserResponse)
async def get_member_details(
    member_id: int,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    return UserResponse.model_validate(get_member(db, member_id).to_dict())

@router.post("/{member_id}/suspend", response_model=UserResponse)
async def suspend_member(
    member_id: int,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Suspended members cannot borrow or renew."""
    member = members.set_account_state(db, member_id, AccountState.SUSPENDED)
    return UserResponse.model_validate(member.to_dict())

@router.post("/{member_id}/activate", response_model=UserResponse)
async def activate_member(
    member_id: int,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    member = members.set_account_state(db, member_id, AccountState.ACTIVE)
    return UserResponse.model_validate(member.to_dict())
