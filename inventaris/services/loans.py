"""Loan state machine.

    menunggu ──approve──> dipinjam ──return──> dikembalikan
       │
       ├──reject──> ditolak
       └──cancel──> dibatalkan

Every transition runs in one transaction: the loan row is claimed with a
guarded ``UPDATE ... WHERE status = <expected>`` and any ledger change for its
item happens in the same unit, so a duplicate or late call fails without
side effects. This module is the only place that assigns ``Loan.status``.
"""
from datetime import datetime
from typing import Optional, Union

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm import Session

from inventaris.config import settings
from inventaris.database import transaction
from inventaris.errors import ForbiddenError, NotFoundError, ValidationError
from inventaris.models.item import Item, ItemCondition
from inventaris.models.loan import Loan, LoanEvent, LoanStatus
from inventaris.models.user import STAFF_ROLES, UserRole
from inventaris.services import condition as condition_tracker
from inventaris.services import ledger
from inventaris.utils import starts_before_today, to_utc_naive, utcnow

EVERYONE = frozenset(UserRole)

# operation -> roles allowed to invoke it
LOAN_PERMISSIONS = {
    "create": EVERYONE,
    "view": EVERYONE,
    "view_history": EVERYONE,
    "cancel": EVERYONE,
    "approve": STAFF_ROLES,
    "reject": STAFF_ROLES,
    "return": STAFF_ROLES,
    "global_stats": STAFF_ROLES,
}

# operations where a plain user may only touch their own loans
OWNER_ONLY_FOR_USERS = frozenset({"view", "view_history", "cancel"})

FORBIDDEN_MESSAGES = {
    "approve": "Anda tidak memiliki hak untuk menyetujui peminjaman",
    "reject": "Anda tidak memiliki hak untuk menolak peminjaman",
    "return": "Anda tidak memiliki hak untuk memproses pengembalian",
    "cancel": "Anda tidak memiliki hak untuk membatalkan peminjaman ini",
    "view": "Anda tidak memiliki akses ke data peminjaman ini",
    "view_history": "Anda tidak memiliki akses untuk melihat riwayat peminjaman pengguna lain",
    "global_stats": "Anda tidak memiliki akses ke data statistik keseluruhan",
}

TRANSITIONS = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE, LoanStatus.REJECTED, LoanStatus.CANCELLED}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.RETURNED}),
}

_TRANSITION_VERBS = {
    LoanStatus.ACTIVE: "disetujui",
    LoanStatus.REJECTED: "ditolak",
    LoanStatus.CANCELLED: "dibatalkan",
    LoanStatus.RETURNED: "dikembalikan",
}


def role_of(actor) -> UserRole:
    return UserRole(actor.role)


def authorize(operation: str, actor, loan: Optional[Loan] = None,
              owner_id: Optional[int] = None) -> None:
    """Raise ForbiddenError unless ``actor`` may perform ``operation``.

    Owner-only operations check ``loan.user_id``, or ``owner_id`` when the
    target is a borrower rather than a single loan.
    """
    role = role_of(actor)
    allowed = role in LOAN_PERMISSIONS[operation]
    if loan is not None:
        owner_id = loan.user_id
    if allowed and owner_id is not None and operation in OWNER_ONLY_FOR_USERS:
        allowed = role in STAFF_ROLES or owner_id == actor.id
    if not allowed:
        logger.warning(f"Forbidden: user ID {actor.id} ({role.value}) attempted '{operation}'")
        raise ForbiddenError(
            FORBIDDEN_MESSAGES.get(operation, "Anda tidak memiliki hak untuk melakukan aksi ini")
        )


def can_transition(current: LoanStatus, target: LoanStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def _illegal_transition(current: LoanStatus, target: LoanStatus) -> ValidationError:
    return ValidationError(
        f"Peminjaman tidak dapat {_TRANSITION_VERBS[target]} "
        f"karena status saat ini adalah {current.value}"
    )


def _lock_loan(db: Session, loan_id: int) -> Loan:
    loan = (
        db.query(Loan)
        .filter(Loan.id == loan_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not loan:
        raise NotFoundError("Peminjaman tidak ditemukan")
    return loan


def _transition(db: Session, loan: Loan, target: LoanStatus, actor, note=None, **values) -> None:
    """Move ``loan`` to ``target`` only if nobody moved it first."""
    current = loan.status
    if not can_transition(current, target):
        raise _illegal_transition(current, target)

    result = db.execute(
        update(Loan)
        .where(Loan.id == loan.id, Loan.status == current)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    db.refresh(loan)
    if result.rowcount != 1:
        raise _illegal_transition(loan.status, target)

    db.add(LoanEvent(
        loan_id=loan.id, from_status=current, to_status=target, actor_id=actor.id, note=note
    ))


def count_open_loans(db: Session, user_id: int) -> int:
    return db.query(Loan).filter(
        Loan.user_id == user_id,
        Loan.status.in_([LoanStatus.PENDING, LoanStatus.ACTIVE]),
    ).count()


def create_loan(
    db: Session,
    borrower,
    *,
    item_id: Optional[int],
    requested_start: Optional[datetime],
    requested_due: Optional[datetime],
    purpose: Optional[str],
    quantity: int = 1,
) -> Loan:
    """Submit a loan request in ``menunggu``. Stock is only committed at approval."""
    authorize("create", borrower)
    if not item_id or not requested_start or not requested_due or not (purpose or "").strip():
        raise ValidationError("Barang, tanggal pinjam, tanggal kembali, dan keperluan harus diisi")
    if quantity is None or quantity < 1:
        raise ValidationError("Jumlah peminjaman minimal 1")

    if role_of(borrower) == UserRole.USER and starts_before_today(requested_start):
        raise ValidationError("Tanggal pinjam tidak boleh di masa lalu")
    start = to_utc_naive(requested_start)
    due = to_utc_naive(requested_due)
    if due <= start:
        raise ValidationError("Tanggal kembali harus setelah tanggal pinjam")

    with transaction(db):
        item = db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise NotFoundError("Barang tidak ditemukan")
        # Advisory only; approval re-checks under the row lock.
        if item.quantity_available < quantity:
            raise ledger.insufficient_stock(item.quantity_available)

        cap = settings.MAX_ACTIVE_LOANS_PER_USER
        if cap > 0 and count_open_loans(db, borrower.id) >= cap:
            raise ValidationError(f"Batas maksimal {cap} peminjaman aktif telah tercapai")

        loan = Loan(
            user_id=borrower.id,
            item_id=item.id,
            quantity=quantity,
            requested_start=start,
            requested_due=due,
            purpose=purpose,
            status=LoanStatus.PENDING,
            condition_at_checkout=item.condition,
        )
        db.add(loan)
        db.flush()
        db.add(LoanEvent(loan_id=loan.id, from_status=None, to_status=LoanStatus.PENDING,
                         actor_id=borrower.id))

    db.refresh(loan)
    logger.info(
        f"Peminjaman request created for barang: {item.name} (ID: {item.id}) "
        f"by user ID: {borrower.id}"
    )
    return loan


def approve_loan(db: Session, loan_id: int, approver, staff_note: Optional[str] = None) -> Loan:
    """Approve a pending loan and reserve its stock atomically."""
    authorize("approve", approver)

    with transaction(db):
        loan = _lock_loan(db, loan_id)
        if not can_transition(loan.status, LoanStatus.ACTIVE):
            raise _illegal_transition(loan.status, LoanStatus.ACTIVE)

        item = ledger.lock_item(db, loan.item_id)
        if item.quantity_available < loan.quantity:
            raise ledger.insufficient_stock(item.quantity_available)

        _transition(
            db, loan, LoanStatus.ACTIVE, approver, note=staff_note,
            staff_note=staff_note,
            approved_by=approver.id,
            approved_at=utcnow(),
            condition_at_checkout=item.condition,
        )
        ledger.reserve(db, loan.item_id, loan.quantity)

    db.refresh(loan)
    logger.info(f"Peminjaman approved: ID {loan.id} by user ID: {approver.id}")
    return loan


def reject_loan(db: Session, loan_id: int, approver, reason: Optional[str]) -> Loan:
    """Reject a pending loan. No stock was ever reserved for it."""
    authorize("reject", approver)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Alasan penolakan harus diisi")

    with transaction(db):
        loan = _lock_loan(db, loan_id)
        _transition(db, loan, LoanStatus.REJECTED, approver, note=reason, staff_note=reason)

    db.refresh(loan)
    logger.info(f"Peminjaman rejected: ID {loan.id} by user ID: {approver.id}")
    return loan


def cancel_loan(db: Session, loan_id: int, actor) -> Loan:
    """Withdraw a pending loan; active loans must be returned instead."""
    with transaction(db):
        loan = _lock_loan(db, loan_id)
        authorize("cancel", actor, loan)
        _transition(db, loan, LoanStatus.CANCELLED, actor)

    db.refresh(loan)
    logger.info(f"Peminjaman canceled: ID {loan.id} by user ID: {actor.id}")
    return loan


def return_loan(
    db: Session,
    loan_id: int,
    staff,
    condition_observed: Union[ItemCondition, str, None],
    note: Optional[str] = None,
) -> Loan:
    """Close an active loan: release stock and record the observed condition."""
    authorize("return", staff)
    if condition_observed is None or condition_observed == "":
        raise ValidationError("Kondisi saat kembali harus diisi")
    observed = condition_tracker.parse_condition(condition_observed)

    with transaction(db):
        loan = _lock_loan(db, loan_id)
        _transition(
            db, loan, LoanStatus.RETURNED, staff, note=note,
            condition_at_return=observed,
            returned_at=utcnow(),
            staff_note=note,
        )
        item = ledger.release(db, loan.item_id, loan.quantity)
        condition_tracker.degrade_if_worse(db, item, observed)

    db.refresh(loan)
    logger.info(f"Peminjaman returned: ID {loan.id} by user ID: {staff.id}")
    return loan
