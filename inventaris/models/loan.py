"""Loan (peminjaman) model and its transition log."""
import enum

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from inventaris.database import Base
from inventaris.errors import ValidationError
from inventaris.models.item import condition_enum
from inventaris.models.user import enum_values
from inventaris.utils import utcnow


class LoanStatus(str, enum.Enum):
    """Loan lifecycle states. Values are the names shown to users."""
    PENDING = "menunggu"
    ACTIVE = "dipinjam"
    RETURNED = "dikembalikan"
    REJECTED = "ditolak"
    CANCELLED = "dibatalkan"


def loan_status_enum() -> Enum:
    return Enum(LoanStatus, name="loan_status", values_callable=enum_values)


class Loan(Base):
    """Loan model - one borrow request and its history.

    Holds data only; status changes go through ``inventaris.services.loans``.
    """
    __tablename__ = "peminjaman"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_peminjaman_quantity_min"),
        CheckConstraint("requested_due > requested_start", name="ck_peminjaman_dates"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("barang.id"), nullable=False, index=True)
    quantity = Column(Integer, default=1, nullable=False)
    requested_start = Column(DateTime, nullable=False)
    requested_due = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)
    purpose = Column(Text, nullable=False)
    status = Column(loan_status_enum(), default=LoanStatus.PENDING, nullable=False, index=True)
    staff_note = Column(Text, nullable=True)
    condition_at_checkout = Column(condition_enum(), nullable=True)
    condition_at_return = Column(condition_enum(), nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    borrower = relationship("User", back_populates="loans", foreign_keys=[user_id])
    approver = relationship("User", foreign_keys=[approved_by])
    item = relationship("Item", back_populates="loans")
    events = relationship(
        "LoanEvent", back_populates="loan", cascade="all, delete-orphan", order_by="LoanEvent.id"
    )

    @validates("quantity")
    def _check_quantity(self, key, value):
        if value is None or value < 1:
            raise ValidationError("Jumlah peminjaman minimal 1")
        return value

    @validates("requested_start", "requested_due")
    def _check_dates(self, key, value):
        if value is None:
            raise ValidationError("Tanggal pinjam dan tanggal kembali harus diisi")
        start = value if key == "requested_start" else self.requested_start
        due = value if key == "requested_due" else self.requested_due
        if start is not None and due is not None and due <= start:
            raise ValidationError("Tanggal kembali harus setelah tanggal pinjam")
        return value

    @validates("purpose")
    def _check_purpose(self, key, value):
        if not value or not value.strip():
            raise ValidationError("Keperluan harus diisi")
        return value.strip()

    @property
    def is_overdue(self) -> bool:
        """Derived, never stored: an active loan past its due date."""
        return self.status == LoanStatus.ACTIVE and utcnow() > self.requested_due


class LoanEvent(Base):
    """History log for loan transitions, written with the transition itself."""
    __tablename__ = "peminjaman_log"

    id = Column(Integer, primary_key=True, index=True)
    loan_id = Column(Integer, ForeignKey("peminjaman.id"), nullable=False, index=True)
    from_status = Column(loan_status_enum(), nullable=True)
    to_status = Column(loan_status_enum(), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    loan = relationship("Loan", back_populates="events")
