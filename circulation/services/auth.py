import logging
from datetime import timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from circulation.config import settings
from circulation.models.enums import AccountState, Role
from circulation.models.user import User
from circulation.database import get_db
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)

# auto_error=False: missing headers are reported through our own 401 below
security = HTTPBearer(auto_error=False)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Stored password hash could not be checked: {e}")
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign ``data`` as a JWT that expires after ``expires_delta`` (configured lifetime by default)."""
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    claims = dict(data, exp=now_local() + lifetime)
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

def token_for(user: User) -> str:
    return create_access_token({"sub": str(user.user_id), "role": user.user_role})

def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials. Please provide a valid Authorization header with Bearer token.",
        headers={"WWW-Authenticate": "Bearer"},
    )

def decode_user_id(token: str) -> int:
    """User id carried in the token's ``sub`` claim; 401 when the token is bad or expired."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return int(payload["sub"])
    except JWTError as e:
        logger.warning(f"Rejected token: {e}")
    except (KeyError, ValueError, TypeError) as e:
        logger.warning(f"Token has no usable subject: {e}")
    raise _unauthorized()

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token to an active user account."""
    if credentials is None or not credentials.credentials:
        if request.headers.get("Authorization"):
            logger.warning(f"Malformed Authorization header on {request.url.path}")
        else:
            logger.warning(f"Authorization header missing on {request.url.path}")
        raise _unauthorized()

    user_id = decode_user_id(credentials.credentials)
    user = db.query(User).filter(User.user_id == user_id).first()
    if user is None:
        logger.warning(f"Token references unknown user {user_id}")
        raise _unauthorized()
    if user.account_state == AccountState.INACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive"
        )
    return user

def require_librarian(current_user: User = Depends(get_current_user)) -> User:
    """Allow only librarians through."""
    if not current_user.is_librarian:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only librarians can perform this action"
        )
    return current_user

def scoped_member_id(current_user: User, member_id: Optional[int]) -> Optional[int]:
    """Members only ever see their own records; librarians may filter freely."""
    if current_user.user_role == Role.MEMBER.value:
        return current_user.user_id
    return member_id

def ensure_owner_or_librarian(current_user: User, owner_id: int, what: str = "resource"):
    if not current_user.is_librarian and current_user.user_id != owner_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only access your own {what}"
        )
