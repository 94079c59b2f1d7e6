"""Category and item management."""
from typing import Optional

from loguru import logger
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from inventaris.database import transaction
from inventaris.errors import NotFoundError, ValidationError
from inventaris.models.category import Category
from inventaris.models.item import Item, ItemCondition
from inventaris.models.loan import Loan
from inventaris.pagination import paginate
from inventaris.services import ledger
from inventaris.utils import utcnow

ITEM_SORT_COLUMNS = {
    "id": Item.id,
    "code": Item.code,
    "name": Item.name,
    "quantity_available": Item.quantity_available,
    "created_at": Item.created_at,
}
CATEGORY_SORT_COLUMNS = {
    "id": Category.id,
    "name": Category.name,
    "created_at": Category.created_at,
}


def _order(query, columns: dict, sort_by: str, sort_order: str, tiebreak):
    if sort_by not in columns:
        raise ValidationError(f"Kolom pengurutan tidak valid: {sort_by}")
    if sort_order.lower() == "desc":
        return query.order_by(columns[sort_by].desc(), tiebreak.desc())
    if sort_order.lower() == "asc":
        return query.order_by(columns[sort_by].asc(), tiebreak.asc())
    raise ValidationError("Urutan harus asc atau desc")


# --- Categories ---

def list_categories(db: Session, search: Optional[str] = None, sort_by: str = "name",
                    sort_order: str = "asc", page: Optional[int] = None,
                    per_page: Optional[int] = None) -> dict:
    query = db.query(Category)
    if search:
        term = f"%{search}%"
        query = query.filter(or_(Category.name.ilike(term), Category.description.ilike(term)))
    query = _order(query, CATEGORY_SORT_COLUMNS, sort_by, sort_order, Category.id)
    return paginate(query, page, per_page)


def get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise NotFoundError("Kategori tidak ditemukan")
    return category


def _ensure_category_name_free(db: Session, name: str) -> None:
    if db.query(Category).filter(Category.name == name).first():
        raise ValidationError("Nama kategori sudah digunakan")


def create_category(db: Session, name: str, description: Optional[str] = None) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Nama kategori harus diisi")
    _ensure_category_name_free(db, name)

    category = Category(name=name, description=description)
    db.add(category)
    db.commit()
    db.refresh(category)
    logger.info(f"Kategori created: {name} (ID: {category.id})")
    return category


def update_category(db: Session, category_id: int, **changes) -> Category:
    category = get_category(db, category_id)
    name = changes.get("name")
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Nama kategori tidak boleh kosong")
        if name != category.name:
            _ensure_category_name_free(db, name)
        category.name = name
    if "description" in changes:
        category.description = changes["description"]

    db.commit()
    db.refresh(category)
    logger.info(f"Kategori updated: {category.name} (ID: {category.id})")
    return category


def items_count_by_category(db: Session) -> list:
    """Number of items in each category, empty categories included."""
    item_count = func.count(Item.id)
    rows = (
        db.query(Category.id, Category.name, item_count.label("item_count"))
        .outerjoin(Item, Item.category_id == Category.id)
        .group_by(Category.id, Category.name)
        .order_by(Category.name.asc(), Category.id.asc())
        .all()
    )
    return [{"id": row.id, "name": row.name, "item_count": row.item_count} for row in rows]


def delete_category(db: Session, category_id: int) -> None:
    category = get_category(db, category_id)
    items_count = db.query(Item).filter(Item.category_id == category.id).count()
    if items_count > 0:
        raise ValidationError(
            f"Kategori tidak dapat dihapus karena masih digunakan oleh {items_count} barang"
        )
    db.delete(category)
    db.commit()
    logger.info(f"Kategori deleted: {category.name} (ID: {category_id})")


# --- Items ---

def list_items(db: Session, search: Optional[str] = None, category_id: Optional[int] = None,
               condition: Optional[ItemCondition] = None, available: bool = False,
               sort_by: str = "code", sort_order: str = "asc", page: Optional[int] = None,
               per_page: Optional[int] = None) -> dict:
    query = db.query(Item).options(joinedload(Item.category))

    if search:
        term = f"%{search}%"
        query = query.filter(
            (Item.code.ilike(term)) |
            (Item.name.ilike(term)) |
            (Item.description.ilike(term))
        )
    if category_id:
        query = query.filter(Item.category_id == category_id)
    if condition:
        query = query.filter(Item.condition == ItemCondition(condition))
    if available:
        query = query.filter(Item.quantity_available > 0)

    query = _order(query, ITEM_SORT_COLUMNS, sort_by, sort_order, Item.id)
    return paginate(query, page, per_page)


def get_item(db: Session, item_id: int) -> Item:
    item = db.query(Item).options(joinedload(Item.category)).filter(Item.id == item_id).first()
    if not item:
        raise NotFoundError("Barang tidak ditemukan")
    return item


def _check_acquisition_year(year: Optional[int]) -> None:
    if year is None:
        return
    if year < 1900:
        raise ValidationError("Tahun pengadaan tidak valid")
    if year > utcnow().year:
        raise ValidationError("Tahun pengadaan tidak boleh melebihi tahun sekarang")


def create_item(db: Session, *, code: str, name: str, category_id: int, quantity_total: int,
                condition: ItemCondition = ItemCondition.GOOD, description: Optional[str] = None,
                location: Optional[str] = None, acquisition_year: Optional[int] = None) -> Item:
    """Register a new item; all of its units start out available."""
    if not code or not name or not category_id or not quantity_total:
        raise ValidationError("Kode, nama, kategori, jumlah, dan kondisi harus diisi")
    if quantity_total < 1:
        raise ValidationError("Jumlah barang minimal 1")
    _check_acquisition_year(acquisition_year)
    get_category(db, category_id)
    if db.query(Item).filter(Item.code == code).first():
        raise ValidationError("Kode barang sudah digunakan")

    item = Item(
        code=code,
        name=name,
        description=description,
        category_id=category_id,
        quantity_total=quantity_total,
        quantity_available=quantity_total,
        condition=ItemCondition(condition),
        location=location,
        acquisition_year=acquisition_year,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"Barang created: {name} (ID: {item.id})")
    return item


def update_item(db: Session, item_id: int, **changes) -> Item:
    """Edit an item. A new ``quantity_total`` goes through the ledger."""
    with transaction(db):
        item = ledger.lock_item(db, item_id)

        code = changes.pop("code", None)
        if code and code != item.code:
            if db.query(Item).filter(Item.code == code).first():
                raise ValidationError("Kode barang sudah digunakan")
            changes["code"] = code

        category_id = changes.pop("category_id", None)
        if category_id and category_id != item.category_id:
            get_category(db, category_id)
            changes["category_id"] = category_id

        if "acquisition_year" in changes:
            _check_acquisition_year(changes["acquisition_year"])
        if changes.get("condition") is not None:
            changes["condition"] = ItemCondition(changes["condition"])

        # resize refreshes the row, so it runs before any attribute is set
        quantity_total = changes.pop("quantity_total", None)
        if quantity_total is not None and quantity_total != item.quantity_total:
            ledger.resize(db, item.id, quantity_total)

        for field, value in changes.items():
            if value is None and field in ("code", "name", "category_id", "condition"):
                continue
            setattr(item, field, value)

    db.refresh(item)
    logger.info(f"Barang updated: {item.name} (ID: {item.id})")
    return item


def delete_item(db: Session, item_id: int) -> None:
    """Delete an item that has no units out and no loan history."""
    with transaction(db):
        item = ledger.lock_item(db, item_id)
        if item.quantity_available != item.quantity_total:
            raise ValidationError("Barang tidak dapat dihapus karena sedang dipinjam")
        if db.query(Loan).filter(Loan.item_id == item.id).count():
            raise ValidationError("Barang tidak dapat dihapus karena memiliki riwayat peminjaman")
        name, code = item.name, item.code
        db.delete(item)

    logger.info(f"Barang deleted: {name} ({code})")
