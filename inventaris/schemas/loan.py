"""Loan schemas."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from inventaris.models.item import ItemCondition
from inventaris.models.loan import LoanStatus
from inventaris.models.user import UserRole
from inventaris.schemas.common import Pagination


class LoanCreate(BaseModel):
    """Schema for submitting a loan request."""
    item_id: int
    requested_start: datetime
    requested_due: datetime
    quantity: int = Field(1, ge=1)
    purpose: str = Field(..., min_length=1)


class LoanApprove(BaseModel):
    staff_note: Optional[str] = None


class LoanReject(BaseModel):
    reason: str = Field(..., min_length=1)


class LoanReturn(BaseModel):
    condition: ItemCondition
    note: Optional[str] = None


class ItemSummary(BaseModel):
    """Short item reference shown with a loan."""
    id: int
    code: str
    name: str
    condition: ItemCondition

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    """Short borrower reference shown with a loan."""
    id: int
    name: str
    email: str
    role: UserRole

    class Config:
        from_attributes = True


class LoanResponse(BaseModel):
    """Response schema for loans."""
    id: int
    user_id: int
    item_id: int
    quantity: int
    requested_start: datetime
    requested_due: datetime
    returned_at: Optional[datetime] = None
    purpose: str
    status: LoanStatus
    staff_note: Optional[str] = None
    condition_at_checkout: Optional[ItemCondition] = None
    condition_at_return: Optional[ItemCondition] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    is_overdue: bool = False
    item: Optional[ItemSummary] = None
    borrower: Optional[UserSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LoanPage(BaseModel):
    data: List[LoanResponse]
    pagination: Pagination


class LoanEventResponse(BaseModel):
    id: int
    loan_id: int
    from_status: Optional[LoanStatus] = None
    to_status: LoanStatus
    actor_id: int
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserStats(BaseModel):
    total: int
    active: int
    pending: int
    returned: int
    overdue: int


class TopItem(BaseModel):
    item_id: int
    code: str
    name: str
    loan_count: int


class GlobalStats(BaseModel):
    total: int
    pending: int
    active: int
    returned: int
    rejected: int
    cancelled: int
    overdue: int
    top_items: List[TopItem]


class UserLoanHistory(BaseModel):
    """One borrower and every loan they made, newest first."""
    user: UserSummary
    loans: List[LoanResponse]
