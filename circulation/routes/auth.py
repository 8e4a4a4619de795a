from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from circulation.database import get_db, transaction
from circulation.models.enums import Role
from circulation.models.user import User
from circulation.schemas.auth import UserCreate, UserLogin, PasswordChange, UserResponse, Token
from circulation.services import members
from circulation.services.auth import (
    verify_password,
    get_password_hash,
    token_for,
    get_current_user,
    require_librarian,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])

def _register(user_data: UserCreate, role: Role, db: Session) -> User:
    return members.create_user(
        db,
        fname=user_data.user_fname,
        lname=user_data.user_lname,
        email=user_data.user_email,
        password=user_data.password,
        phone_number=user_data.phone_number,
        role=role,
    )

@router.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
async def signup(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a new member."""
    db_user = _register(user_data, Role.MEMBER, db)
    return Token(
        access_token=token_for(db_user),
        token_type="bearer",
        user=UserResponse.model_validate(db_user.to_dict())
    )

@router.post("/register-librarian", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_librarian(
    user_data: UserCreate,
    current_user: User = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Create a librarian account. Only librarians may add librarians."""
    db_user = _register(user_data, Role.LIBRARIAN, db)
    return UserResponse.model_validate(db_user.to_dict())

@router.post("/login", response_model=Token)
async def login(user_data: UserLogin, db: Session = Depends(get_db)):
    """Login and get access token."""
    user = db.query(User).filter(User.user_email == user_data.user_email).first()
    if not user or not verify_password(user_data.password, user.user_password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password"
        )

    return Token(
        access_token=token_for(user),
        token_type="bearer",
        user=UserResponse.model_validate(user.to_dict())
    )

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current authenticated user information."""
    return UserResponse.model_validate(current_user.to_dict())

@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    password_data: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not verify_password(password_data.current_password, current_user.user_password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Current password is incorrect"
        )
    with transaction(db):
        current_user.user_password_hash = get_password_hash(password_data.new_password)
