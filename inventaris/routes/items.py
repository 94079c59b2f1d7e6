"""Item (barang) routes."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from inventaris.auth import get_current_user, require_staff
from inventaris.database import get_db
from inventaris.models.item import ItemCondition
from inventaris.models.user import User
from inventaris.schemas.item import (
    ItemCreate, ItemUpdate, ItemConditionUpdate, ItemResponse, ItemPage
)
from inventaris.services import catalog, condition

router = APIRouter(prefix="/items", tags=["Items"])


@router.get("/", response_model=ItemPage)
def list_items(
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    search: Optional[str] = Query(None, description="Search by code, name or description"),
    category_id: Optional[int] = Query(None, description="Filter by category"),
    condition_filter: Optional[ItemCondition] = Query(None, alias="condition"),
    available: bool = Query(False, description="Only items with stock available"),
    sort_by: str = "code",
    sort_order: str = "asc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List items with filtering and pagination."""
    return catalog.list_items(
        db, search=search, category_id=category_id, condition=condition_filter,
        available=available, sort_by=sort_by, sort_order=sort_order,
        page=page, per_page=per_page
    )


@router.post("/", response_model=ItemResponse, status_code=status.HTTP_201_CREATED)
def create_item(
    item_data: ItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """Create a new item (admin or petugas)."""
    return catalog.create_item(db, **item_data.model_dump())


@router.get("/{item_id}", response_model=ItemResponse)
def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific item."""
    return catalog.get_item(db, item_id)


@router.put("/{item_id}", response_model=ItemResponse)
def update_item(
    item_id: int,
    item_update: ItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """Update an item (admin or petugas). Quantity changes respect units on loan."""
    return catalog.update_item(db, item_id, **item_update.model_dump(exclude_unset=True))


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """Delete an item that is not lent out."""
    catalog.delete_item(db, item_id)
    return None


@router.patch("/{item_id}/condition", response_model=ItemResponse)
def update_item_condition(
    item_id: int,
    body: ItemConditionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """Manually correct an item's condition."""
    return condition.set_condition(db, item_id, body.condition)
