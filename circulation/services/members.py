import logging
from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from circulation.database import transaction
from circulation.models.enums import AccountState, Role
from circulation.models.user import User
from circulation.services.errors import ConflictError
from circulation.services.auth import get_password_hash
from circulation.services.loans import get_member

logger = logging.getLogger(__name__)

def create_user(db: Session, fname: str, lname: str, email: str, password: str,
                phone_number: Optional[str] = None, role: Role = Role.MEMBER) -> User:
    with transaction(db):
        if db.query(User).filter(User.user_email == email).first():
            raise ConflictError("Email already registered")
        user = User(
            user_fname=fname,
            user_lname=lname,
            user_email=email,
            user_password_hash=get_password_hash(password),
            phone_number=phone_number,
            user_role=role.value,
            account_state=AccountState.ACTIVE.value,
        )
        db.add(user)
    db.refresh(user)
    logger.info(f"{role.value.title()} account {user.user_id} registered")
    return user

def list_members(db: Session, search: Optional[str] = None, account_state: Optional[AccountState] = None) -> List[User]:
    query = db.query(User).filter(User.user_role == Role.MEMBER.value)
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                User.user_fname.ilike(search_term),
                User.user_lname.ilike(search_term),
                User.user_email.ilike(search_term)
            )
        )
    if account_state:
        query = query.filter(User.account_state == account_state.value)
    return query.order_by(User.user_lname, User.user_fname).all()

def set_account_state(db: Session, member_id: int, state: AccountState) -> User:
    with transaction(db):
        member = get_member(db, member_id)
        member.account_state = state.value
    db.refresh(member)
    logger.info(f"Member {member_id} account state set to {state.value}")
    return member
