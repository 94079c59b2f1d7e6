"""Loan (peminjaman) routes."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from inventaris.auth import get_current_user
from inventaris.database import get_db
from inventaris.models.loan import LoanStatus
from inventaris.models.user import User
from inventaris.schemas.loan import (
    LoanCreate, LoanApprove, LoanReject, LoanReturn,
    LoanResponse, LoanPage, LoanEventResponse, UserStats, GlobalStats
)
from inventaris.services import loans, reports

router = APIRouter(prefix="/loans", tags=["Loans"])


@router.get("/", response_model=LoanPage)
def list_loans(
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    user_id: Optional[int] = Query(None, description="Filter by borrower"),
    item_id: Optional[int] = Query(None, description="Filter by item"),
    status_filter: Optional[LoanStatus] = Query(None, alias="status"),
    overdue: bool = Query(False, description="Only active loans past their due date"),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List loans. Borrowers only see their own."""
    filters = reports.LoanFilters(
        borrower_id=user_id,
        item_id=item_id,
        status=status_filter,
        overdue=overdue,
        start_date=start_date,
        end_date=end_date,
    )
    return reports.list_loans(
        db, current_user, filters,
        sort_by=sort_by, sort_order=sort_order, page=page, per_page=per_page
    )


@router.post("/", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
def create_loan(
    loan_data: LoanCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Submit a loan request (status menunggu)."""
    return loans.create_loan(db, current_user, **loan_data.model_dump())


@router.get("/stats/user", response_model=UserStats)
def get_user_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Loan counts for the current user."""
    return reports.user_stats(db, current_user.id)


@router.get("/stats/overall", response_model=GlobalStats)
def get_global_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Dashboard statistics (admin or petugas)."""
    return reports.global_stats(db, current_user)


@router.get("/{loan_id}", response_model=LoanResponse)
def get_loan(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return reports.get_loan(db, loan_id, current_user)


@router.get("/{loan_id}/history", response_model=List[LoanEventResponse])
def get_loan_history(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Every status change recorded for a loan."""
    return reports.loan_history(db, loan_id, current_user)


@router.post("/{loan_id}/approve", response_model=LoanResponse)
def approve_loan(
    loan_id: int,
    body: Optional[LoanApprove] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Approve a pending loan and take its quantity out of stock."""
    staff_note = body.staff_note if body else None
    return loans.approve_loan(db, loan_id, current_user, staff_note=staff_note)


@router.post("/{loan_id}/reject", response_model=LoanResponse)
def reject_loan(
    loan_id: int,
    body: LoanReject,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return loans.reject_loan(db, loan_id, current_user, body.reason)


@router.post("/{loan_id}/return", response_model=LoanResponse)
def return_loan(
    loan_id: int,
    body: LoanReturn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Process the return of an active loan."""
    return loans.return_loan(db, loan_id, current_user, body.condition, note=body.note)


@router.post("/{loan_id}/cancel", response_model=LoanResponse)
def cancel_loan(
    loan_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Cancel a pending loan (its borrower or staff)."""
    return loans.cancel_loan(db, loan_id, current_user)
