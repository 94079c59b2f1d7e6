"""Read-only loan queries and statistics."""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session, joinedload

from inventaris.errors import NotFoundError, ValidationError
from inventaris.models.item import Item
from inventaris.models.loan import Loan, LoanEvent, LoanStatus
from inventaris.models.user import User, UserRole
from inventaris.pagination import paginate
from inventaris.services.loans import authorize, role_of
from inventaris.utils import utcnow

SORTABLE_COLUMNS = {
    "id": Loan.id,
    "created_at": Loan.created_at,
    "requested_start": Loan.requested_start,
    "requested_due": Loan.requested_due,
    "status": Loan.status,
}

TOP_ITEMS_LIMIT = 5


@dataclass
class LoanFilters:
    borrower_id: Optional[int] = None
    item_id: Optional[int] = None
    status: Optional[LoanStatus] = None
    overdue: bool = False
    start_date: Optional[date] = None
    end_date: Optional[date] = None


def overdue_clause(now: Optional[datetime] = None):
    """SQL form of ``Loan.is_overdue``."""
    now = now or utcnow()
    return and_(Loan.status == LoanStatus.ACTIVE, Loan.requested_due < now)


def _with_summaries(query):
    return query.options(joinedload(Loan.item), joinedload(Loan.borrower))


def list_loans(
    db: Session,
    actor,
    filters: Optional[LoanFilters] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: Optional[int] = None,
    per_page: Optional[int] = None,
) -> dict:
    """Filtered, sorted page of loans. Plain users only see their own."""
    filters = filters or LoanFilters()
    if sort_by not in SORTABLE_COLUMNS:
        raise ValidationError(f"Kolom pengurutan tidak valid: {sort_by}")
    if sort_order.lower() not in ("asc", "desc"):
        raise ValidationError("Urutan harus asc atau desc")

    query = _with_summaries(db.query(Loan))

    if role_of(actor) == UserRole.USER:
        query = query.filter(Loan.user_id == actor.id)
    if filters.borrower_id:
        query = query.filter(Loan.user_id == filters.borrower_id)
    if filters.item_id:
        query = query.filter(Loan.item_id == filters.item_id)

    # Overdue is a refinement of "dipinjam" and overrides any status filter.
    if filters.overdue:
        query = query.filter(overdue_clause())
    elif filters.status:
        query = query.filter(Loan.status == LoanStatus(filters.status))

    if filters.start_date:
        query = query.filter(Loan.requested_start >= datetime.combine(filters.start_date, time.min))
    if filters.end_date:
        # end date is inclusive
        end = datetime.combine(filters.end_date + timedelta(days=1), time.min)
        query = query.filter(Loan.requested_start < end)

    column = SORTABLE_COLUMNS[sort_by]
    if sort_order.lower() == "asc":
        query = query.order_by(column.asc(), Loan.id.asc())
    else:
        query = query.order_by(column.desc(), Loan.id.desc())

    return paginate(query, page, per_page)


def get_loan(db: Session, loan_id: int, actor) -> Loan:
    loan = _with_summaries(db.query(Loan)).filter(Loan.id == loan_id).first()
    if not loan:
        raise NotFoundError("Peminjaman tidak ditemukan")
    authorize("view", actor, loan)
    return loan


def loan_history(db: Session, loan_id: int, actor) -> List[LoanEvent]:
    loan = get_loan(db, loan_id, actor)
    return db.query(LoanEvent).filter(LoanEvent.loan_id == loan.id).order_by(LoanEvent.id).all()


def _status_counts(query) -> dict:
    rows = query.with_entities(Loan.status, func.count(Loan.id)).group_by(Loan.status).all()
    return {LoanStatus(status): count for status, count in rows}


def user_stats(db: Session, borrower_id: int) -> dict:
    """Counts over one borrower's loans."""
    base = db.query(Loan).filter(Loan.user_id == borrower_id)
    counts = _status_counts(base)
    return {
        "total": sum(counts.values()),
        "active": counts.get(LoanStatus.ACTIVE, 0),
        "pending": counts.get(LoanStatus.PENDING, 0),
        "returned": counts.get(LoanStatus.RETURNED, 0),
        "overdue": base.filter(overdue_clause()).count(),
    }


def top_items(db: Session, limit: int = TOP_ITEMS_LIMIT) -> List[dict]:
    """Items ranked by number of loans, ties broken by item id ascending."""
    loan_count = func.count(Loan.id)
    rows = (
        db.query(Item.id, Item.code, Item.name, loan_count.label("loan_count"))
        .join(Loan, Loan.item_id == Item.id)
        .group_by(Item.id, Item.code, Item.name)
        .order_by(loan_count.desc(), Item.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {"item_id": row.id, "code": row.code, "name": row.name, "loan_count": row.loan_count}
        for row in rows
    ]


def global_stats(db: Session, actor) -> dict:
    """Dashboard statistics for staff."""
    authorize("global_stats", actor)
    counts = _status_counts(db.query(Loan))
    return {
        "total": sum(counts.values()),
        "pending": counts.get(LoanStatus.PENDING, 0),
        "active": counts.get(LoanStatus.ACTIVE, 0),
        "returned": counts.get(LoanStatus.RETURNED, 0),
        "rejected": counts.get(LoanStatus.REJECTED, 0),
        "cancelled": counts.get(LoanStatus.CANCELLED, 0),
        "overdue": db.query(Loan).filter(overdue_clause()).count(),
        "top_items": top_items(db),
    }


def loan_history_for_user(db: Session, user_id: int, actor) -> dict:
    """A borrower with all of their loans, newest first.

    Plain users may only read their own history.
    """
    authorize("view_history", actor, owner_id=user_id)
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("Pengguna tidak ditemukan")

    loans = (
        db.query(Loan)
        .options(joinedload(Loan.item))
        .filter(Loan.user_id == user.id)
        .order_by(Loan.created_at.desc(), Loan.id.desc())
        .all()
    )
    return {"user": user, "loans": loans}
