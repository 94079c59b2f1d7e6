"""Authentication routes."""
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger
from sqlalchemy.orm import Session

from inventaris.auth import (
    authenticate_user, create_token_for_user, get_current_user, get_password_hash, verify_password
)
from inventaris.database import get_db
from inventaris.errors import UnauthorizedError, ValidationError
from inventaris.models.user import User, UserRole, UserStatus
from inventaris.schemas.common import Message
from inventaris.schemas.user import PasswordChange, Token, UserRegister, UserResponse
from inventaris.utils import utcnow

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    db: Session = Depends(get_db)
):
    """Self-registration for borrowers."""
    if db.query(User).filter(User.email == user_data.email).first():
        raise ValidationError("Email sudah digunakan")

    user = User(
        **user_data.model_dump(exclude={"password"}),
        hashed_password=get_password_hash(user_data.password),
        role=UserRole.USER,
        status=UserStatus.ACTIVE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User registered: {user.email} (ID: {user.id})")
    return user


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """Exchange email (as username) and password for a bearer token."""
    user = authenticate_user(db, form_data.username, form_data.password)
    if not user:
        raise UnauthorizedError("Email atau password salah")
    if user.status != UserStatus.ACTIVE:
        raise UnauthorizedError("User account is inactive")

    user.last_login = utcnow()
    db.commit()
    logger.info(f"User logged in: ID {user.id}")
    return {"access_token": create_token_for_user(user), "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/change-password", response_model=Message)
def change_password(
    body: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Change the current user's password after checking the old one."""
    if body.new_password != body.password_confirmation:
        raise ValidationError("Konfirmasi password baru tidak cocok")
    if not verify_password(body.current_password, current_user.hashed_password):
        raise ValidationError("Password saat ini salah")

    current_user.hashed_password = get_password_hash(body.new_password)
    db.commit()
    logger.info(f"User changed password: {current_user.email} (ID: {current_user.id})")
    return {"message": "Password berhasil diubah"}
