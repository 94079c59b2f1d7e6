"""User management routes (admin), plus per-user loan history."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from loguru import logger
from sqlalchemy import or_
from sqlalchemy.orm import Session

from inventaris.auth import get_current_user, get_password_hash, require_admin
from inventaris.database import get_db
from inventaris.errors import NotFoundError, ValidationError
from inventaris.models.loan import Loan, LoanEvent, LoanStatus
from inventaris.models.user import User, UserRole, UserStatus
from inventaris.pagination import paginate
from inventaris.schemas.loan import UserLoanHistory
from inventaris.schemas.user import UserCreate, UserPage, UserResponse, UserUpdate
from inventaris.services import reports

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/", response_model=UserPage)
def list_users(
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    role: Optional[UserRole] = Query(None, description="Filter by role"),
    status_filter: Optional[UserStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Search by name or email"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """List all users."""
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if status_filter:
        query = query.filter(User.status == status_filter)
    if search:
        search_term = f"%{search}%"
        query = query.filter((User.name.ilike(search_term)) | (User.email.ilike(search_term)))
    return paginate(query.order_by(User.name.asc(), User.id.asc()), page, per_page)


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Create a user with any role."""
    if db.query(User).filter(User.email == user_data.email).first():
        raise ValidationError("Email sudah digunakan")

    user = User(
        **user_data.model_dump(exclude={"password"}),
        hashed_password=get_password_hash(user_data.password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User created: {user.email} (ID: {user.id}) by user ID: {current_user.id}")
    return user


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User tidak ditemukan")
    return user


@router.put("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    user_update: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Update profile, role or active status."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User tidak ditemukan")

    update_data = user_update.model_dump(exclude_unset=True)
    if update_data.get("email") and update_data["email"] != user.email:
        if db.query(User).filter(User.email == update_data["email"]).first():
            raise ValidationError("Email sudah digunakan")
    if user.id == current_user.id and update_data.get("status") == UserStatus.INACTIVE:
        raise ValidationError("Tidak dapat menonaktifkan akun sendiri")

    for field, value in update_data.items():
        if value is not None:
            setattr(user, field, value)

    db.commit()
    db.refresh(user)
    logger.info(f"User updated: {user.email} (ID: {user.id}) by user ID: {current_user.id}")
    return user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Delete a user with no loan activity. Deactivate the account otherwise."""
    if user_id == current_user.id:
        raise ValidationError("Anda tidak dapat menghapus akun Anda sendiri")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("Pengguna tidak ditemukan")

    if user.role == UserRole.ADMIN:
        admin_count = db.query(User).filter(User.role == UserRole.ADMIN).count()
        if admin_count <= 1:
            raise ValidationError("Tidak dapat menghapus admin terakhir")

    active_loans = db.query(Loan).filter(
        Loan.user_id == user.id, Loan.status == LoanStatus.ACTIVE
    ).count()
    if active_loans > 0:
        raise ValidationError("Pengguna tidak dapat dihapus karena masih memiliki peminjaman aktif")

    # loans and their log keep pointing at the borrower, approver and actor
    has_history = (
        db.query(Loan).filter(or_(Loan.user_id == user.id, Loan.approved_by == user.id)).count()
        or db.query(LoanEvent).filter(LoanEvent.actor_id == user.id).count()
    )
    if has_history:
        raise ValidationError(
            "Pengguna tidak dapat dihapus karena memiliki riwayat peminjaman, "
            "nonaktifkan akun sebagai gantinya"
        )

    email, name = user.email, user.name
    db.delete(user)
    db.commit()
    logger.info(f"User deleted: {email} ({name}) by admin ID: {current_user.id}")
    return None


@router.get("/{user_id}/loan-history", response_model=UserLoanHistory)
def get_user_loan_history(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """A user's loans, newest first. Borrowers may only read their own."""
    return reports.loan_history_for_user(db, user_id, current_user)
