"""User model, role and status enumerations."""
import enum

from sqlalchemy import Column, Integer, String, Enum, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from inventaris.database import Base


def enum_values(enum_cls):
    """Store enum values (not member names) in the database."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    """User roles for the inventory system."""
    ADMIN = "admin"
    PETUGAS = "petugas"
    USER = "user"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.PETUGAS})


class User(Base):
    """Borrowers (role user) and staff (admin, petugas)."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, name="user_role", values_callable=enum_values),
        default=UserRole.USER,
        nullable=False,
    )
    status = Column(
        Enum(UserStatus, name="user_status", values_callable=enum_values),
        default=UserStatus.ACTIVE,
        nullable=False,
    )
    nip = Column(String(20), nullable=True)  # Nomor Induk Pegawai (staff)
    nis = Column(String(20), nullable=True)  # Nomor Induk Siswa (students)
    phone = Column(String(15), nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    loans = relationship("Loan", back_populates="borrower", foreign_keys="Loan.user_id")

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE
