"""User schemas for request/response validation."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field

from inventaris.models.user import UserRole, UserStatus
from inventaris.schemas.common import Pagination


class UserBase(BaseModel):
    """Base user schema."""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    nip: Optional[str] = Field(None, max_length=20)
    nis: Optional[str] = Field(None, max_length=20)
    phone: Optional[str] = Field(None, max_length=15, pattern=r"^[0-9+\-()]*$")


class UserRegister(UserBase):
    """Self-registration; always creates a borrower."""
    password: str = Field(..., min_length=6, max_length=100)


class UserCreate(UserRegister):
    """Schema for creating a user (admin)."""
    role: UserRole = UserRole.USER


class UserUpdate(BaseModel):
    """Schema for updating a user."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    nip: Optional[str] = None
    nis: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=15, pattern=r"^[0-9+\-()]*$")


class UserResponse(UserBase):
    """Schema for user response."""
    id: int
    role: UserRole
    status: UserStatus
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserPage(BaseModel):
    data: List[UserResponse]
    pagination: Pagination


class PasswordChange(BaseModel):
    """Schema for changing one's own password."""
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=100)
    password_confirmation: str = Field(..., min_length=1)


class Token(BaseModel):
    """JWT token schema."""
    access_token: str
    token_type: str
