"""Item stock ledger.

Each operation locks the item row (``SELECT ... FOR UPDATE``) and then changes
``quantity_available`` with one guarded UPDATE, so the stock check and the
write cannot be split by another transaction even on SQLite, which ignores
FOR UPDATE. Nothing here commits: the caller's transaction owns the change
together with the loan transition that triggered it.
"""
from loguru import logger
from sqlalchemy import case, update
from sqlalchemy.orm import Session

from inventaris.errors import NotFoundError, ValidationError
from inventaris.models.item import Item


def insufficient_stock(available: int) -> ValidationError:
    return ValidationError(f"Jumlah barang yang tersedia ({available}) tidak mencukupi")


def lock_item(db: Session, item_id: int) -> Item:
    """Load an item with a row lock, bypassing any stale copy in the session."""
    item = (
        db.query(Item)
        .filter(Item.id == item_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not item:
        raise NotFoundError("Barang tidak ditemukan")
    return item


def reserve(db: Session, item_id: int, qty: int) -> Item:
    """Take ``qty`` units out of the available stock."""
    if qty < 1:
        raise ValidationError("Jumlah peminjaman minimal 1")
    item = lock_item(db, item_id)
    if item.quantity_available < qty:
        raise insufficient_stock(item.quantity_available)

    result = db.execute(
        update(Item)
        .where(Item.id == item_id, Item.quantity_available >= qty)
        .values(quantity_available=Item.quantity_available - qty)
        .execution_options(synchronize_session=False)
    )
    db.refresh(item)
    if result.rowcount != 1:
        logger.warning(f"Stock reservation lost a race on item {item_id}")
        raise insufficient_stock(item.quantity_available)

    logger.debug(f"Reserved {qty} of item {item_id}, available now {item.quantity_available}")
    return item


def release(db: Session, item_id: int, qty: int) -> Item:
    """Put ``qty`` units back, never above ``quantity_total``."""
    if qty < 1:
        raise ValidationError("Jumlah pengembalian minimal 1")
    item = lock_item(db, item_id)
    if item.quantity_available + qty > item.quantity_total:
        logger.warning(
            f"Release of {qty} on item {item_id} exceeds total {item.quantity_total}, clamping"
        )

    restored = Item.quantity_available + qty
    db.execute(
        update(Item)
        .where(Item.id == item_id)
        .values(
            quantity_available=case(
                (restored > Item.quantity_total, Item.quantity_total),
                else_=restored,
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.refresh(item)
    logger.debug(f"Released {qty} of item {item_id}, available now {item.quantity_available}")
    return item


def resize(db: Session, item_id: int, new_total: int) -> Item:
    """Change ``quantity_total`` while keeping the units in use out on loan."""
    if new_total < 1:
        raise ValidationError("Jumlah barang minimal 1")
    item = lock_item(db, item_id)
    in_use = item.quantity_in_use
    if new_total < in_use:
        raise ValidationError(
            f"Tidak dapat mengurangi jumlah barang di bawah {in_use} karena sedang dipinjam"
        )

    result = db.execute(
        update(Item)
        .where(Item.id == item_id, Item.quantity_total - Item.quantity_available <= new_total)
        .values(
            quantity_available=new_total - (Item.quantity_total - Item.quantity_available),
            quantity_total=new_total,
        )
        .execution_options(synchronize_session=False)
    )
    db.refresh(item)
    if result.rowcount != 1:
        raise ValidationError(
            f"Tidak dapat mengurangi jumlah barang di bawah {item.quantity_in_use} "
            "karena sedang dipinjam"
        )

    logger.debug(f"Resized item {item_id} to {new_total} ({in_use} in use)")
    return item
