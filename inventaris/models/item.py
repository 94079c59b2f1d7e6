"""Item (barang) model and condition enumeration."""
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from inventaris.database import Base
from inventaris.models.user import enum_values


class ItemCondition(str, enum.Enum):
    """Physical condition of an item, best first."""
    GOOD = "baik"
    LIGHT_DAMAGE = "rusak_ringan"
    HEAVY_DAMAGE = "rusak_berat"

    @property
    def rank(self) -> int:
        return CONDITION_RANK[self]


CONDITION_RANK = {
    ItemCondition.GOOD: 3,
    ItemCondition.LIGHT_DAMAGE: 2,
    ItemCondition.HEAVY_DAMAGE: 1,
}


def condition_enum(name: str = "kondisi") -> Enum:
    return Enum(ItemCondition, name=name, values_callable=enum_values)


class Item(Base):
    """Item model - a unit of school inventory with a stock ledger.

    ``quantity_total`` is what the school owns, ``quantity_available`` is what
    is not out on an active loan. Only the ledger service changes
    ``quantity_available``.
    """
    __tablename__ = "barang"
    __table_args__ = (
        CheckConstraint("quantity_total >= 1", name="ck_barang_quantity_total_min"),
        CheckConstraint("quantity_available >= 0", name="ck_barang_quantity_available_min"),
        CheckConstraint(
            "quantity_available <= quantity_total", name="ck_barang_quantity_available_max"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    category_id = Column(Integer, ForeignKey("kategori.id"), nullable=False, index=True)
    quantity_total = Column(Integer, default=1, nullable=False)
    quantity_available = Column(Integer, default=1, nullable=False)
    condition = Column(condition_enum(), default=ItemCondition.GOOD, nullable=False)
    location = Column(String(100), nullable=True)
    acquisition_year = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    category = relationship("Category", back_populates="items")
    loans = relationship("Loan", back_populates="item")

    @property
    def quantity_in_use(self) -> int:
        return self.quantity_total - self.quantity_available
