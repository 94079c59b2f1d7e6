"""Category schemas."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from inventaris.schemas.common import Pagination


class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None


class CategoryResponse(CategoryBase):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CategorySummary(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class CategoryPage(BaseModel):
    data: List[CategoryResponse]
    pagination: Pagination


class CategoryItemCount(BaseModel):
    id: int
    name: str
    item_count: int
