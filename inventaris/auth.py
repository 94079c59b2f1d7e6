"""Authentication and role checks.

This is the identity oracle in front of the loan core: it turns a bearer token
into an active ``User`` before any service function is called.
"""
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError, jwt
from loguru import logger
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from inventaris.config import settings
from inventaris.database import get_db
from inventaris.errors import ForbiddenError, UnauthorizedError
from inventaris.models.user import STAFF_ROLES, User, UserRole

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_token_for_user(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": UserRole(user.role).value})


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active user or raise UnauthorizedError."""
    if not token:
        raise UnauthorizedError("Authentication token required")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise UnauthorizedError("Token expired") from None
    except JWTError:
        raise UnauthorizedError("Invalid token") from None

    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise UnauthorizedError("Invalid token")

    user = db.query(User).filter(User.id == int(subject)).first()
    if user is None:
        raise UnauthorizedError("User not found")
    if not user.is_active:
        logger.warning(f"Access denied for inactive user ID {user.id}")
        raise UnauthorizedError("User account is inactive")
    return user


def require_role(roles: Iterable[UserRole]):
    """Dependency factory: the current user must hold one of ``roles``."""
    allowed = frozenset(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(
                f"Forbidden: user ID {current_user.id} with role '{current_user.role.value}' "
                f"attempted action requiring one of {sorted(r.value for r in allowed)}"
            )
            if allowed == {UserRole.ADMIN}:
                raise ForbiddenError("Admin access required")
            raise ForbiddenError("Admin or petugas access required")
        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN])
require_staff = require_role(STAFF_ROLES)
