"""Item schemas for request/response validation."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from inventaris.models.item import ItemCondition
from inventaris.schemas.category import CategorySummary
from inventaris.schemas.common import Pagination


class ItemBase(BaseModel):
    """Base item schema."""
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    category_id: int
    condition: ItemCondition = ItemCondition.GOOD
    location: Optional[str] = Field(None, max_length=100)
    acquisition_year: Optional[int] = Field(None, ge=1900)


class ItemCreate(ItemBase):
    """Schema for creating an item; every unit starts available."""
    quantity_total: int = Field(1, ge=1)


class ItemUpdate(BaseModel):
    """Schema for updating an item."""
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    category_id: Optional[int] = None
    quantity_total: Optional[int] = Field(None, ge=1)
    condition: Optional[ItemCondition] = None
    location: Optional[str] = Field(None, max_length=100)
    acquisition_year: Optional[int] = Field(None, ge=1900)


class ItemConditionUpdate(BaseModel):
    """Manual condition correction by staff."""
    condition: ItemCondition


class ItemResponse(ItemBase):
    """Schema for item response."""
    id: int
    quantity_total: int
    quantity_available: int
    category: Optional[CategorySummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ItemPage(BaseModel):
    data: List[ItemResponse]
    pagination: Pagination
