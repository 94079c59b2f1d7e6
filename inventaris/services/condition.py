"""Item condition tracking."""
from typing import Union

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm import Session

from inventaris.errors import NotFoundError, ValidationError
from inventaris.models.item import Item, ItemCondition


def parse_condition(value: Union[ItemCondition, str, None]) -> ItemCondition:
    if value is None or value == "":
        raise ValidationError("Kondisi harus diisi")
    try:
        return ItemCondition(value)
    except ValueError:
        raise ValidationError(
            "Kondisi tidak valid. Gunakan: baik, rusak_ringan, atau rusak_berat"
        ) from None


def degrade_if_worse(db: Session, item: Item, observed: ItemCondition) -> bool:
    """Lower the item's condition to ``observed`` if that is worse.

    Never upgrades. The guard sits in the UPDATE itself so two concurrent
    returns can only ever move the condition downwards.
    """
    better = [c for c in ItemCondition if c.rank > observed.rank]
    if not better:
        return False

    result = db.execute(
        update(Item)
        .where(Item.id == item.id, Item.condition.in_(better))
        .values(condition=observed)
        .execution_options(synchronize_session=False)
    )
    db.refresh(item)
    if result.rowcount:
        logger.info(f"Barang condition degraded: ID {item.id} to {observed.value}")
        return True
    return False


def set_condition(db: Session, item_id: int, condition: Union[ItemCondition, str]) -> Item:
    """Manual staff correction, in either direction. Commits."""
    condition = parse_condition(condition)
    item = db.query(Item).filter(Item.id == item_id).first()
    if not item:
        raise NotFoundError("Barang tidak ditemukan")

    item.condition = condition
    db.commit()
    db.refresh(item)
    logger.info(f"Barang condition updated: {item.name} (ID: {item.id}) to {condition.value}")
    return item
