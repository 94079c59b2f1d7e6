"""Category (kategori) routes."""
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from inventaris.auth import get_current_user, require_staff
from inventaris.database import get_db
from inventaris.models.user import User
from inventaris.schemas.category import (
    CategoryCreate, CategoryUpdate, CategoryResponse, CategoryPage, CategoryItemCount
)
from inventaris.services import catalog

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("/", response_model=CategoryPage)
def list_categories(
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    search: Optional[str] = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return catalog.list_categories(
        db, search=search, sort_by=sort_by, sort_order=sort_order, page=page, per_page=per_page
    )


@router.post("/", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    category_data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """Create a new category (admin or petugas)."""
    return catalog.create_category(db, category_data.name, category_data.description)


@router.get("/stats/items-count", response_model=List[CategoryItemCount])
def get_items_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Number of items per category."""
    return catalog.items_count_by_category(db)


@router.get("/{category_id}", response_model=CategoryResponse)
def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return catalog.get_category(db, category_id)


@router.put("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    category_update: CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    return catalog.update_category(db, category_id, **category_update.model_dump(exclude_unset=True))


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff)
):
    """Delete a category no item refers to."""
    catalog.delete_category(db, category_id)
    return None
