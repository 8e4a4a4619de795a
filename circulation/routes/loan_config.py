from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from circulation.database import get_db, transaction
from circulation.models.user import User
from circulation.services.auth import get_current_user, require_librarian
from circulation.services.loan_config import get_configuration, update_configuration
from circulation.schemas.loan import LoanConfigurationUpdate, LoanConfigurationResponse

router = APIRouter(prefix="/loan-configuration", tags=["Loan Configuration"])

@router.get("", response_model=LoanConfigurationResponse)
async def read_configuration(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    with transaction(db):
        config = get_configuration(db)
    db.refresh(config)
    return LoanConfigurationResponse.model_validate(config.to_dict())

@router.patch("", response_model=LoanConfigurationResponse)
async def patch_configuration(
    changes: LoanConfigurationUpdate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Change circulation policy; applies to loans and reservations from now on."""
    config = update_configuration(db, changes.model_dump(exclude_unset=True))
    return LoanConfigurationResponse.model_validate(config.to_dict())
