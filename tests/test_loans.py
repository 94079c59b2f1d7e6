from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func

from inventaris.config import settings
from inventaris.errors import ForbiddenError, NotFoundError, ValidationError
from inventaris.models import ItemCondition, Loan, LoanEvent, LoanStatus
from inventaris.services import loans
from inventaris.utils import utcnow


@pytest.fixture
def request_loan(db, borrower, loan_dates):
    start, due = loan_dates

    def _request(item, quantity=1, user=None, purpose="Presentasi kelas XI IPA"):
        return loans.create_loan(
            db, user or borrower,
            item_id=item.id,
            requested_start=start,
            requested_due=due,
            purpose=purpose,
            quantity=quantity,
        )

    return _request


def active_quantity(db, item_id):
    total = db.query(func.coalesce(func.sum(Loan.quantity), 0)).filter(
        Loan.item_id == item_id, Loan.status == LoanStatus.ACTIVE
    ).scalar()
    return total


def test_round_trip(db, make_item, request_loan, petugas):
    item = make_item(quantity=5)

    loan = request_loan(item, quantity=2)
    assert loan.status == LoanStatus.PENDING
    db.refresh(item)
    assert item.quantity_available == 5

    loan = loans.approve_loan(db, loan.id, petugas)
    assert loan.status == LoanStatus.ACTIVE
    assert loan.approved_by == petugas.id
    assert loan.approved_at is not None
    db.refresh(item)
    assert item.quantity_available == 3

    loan = loans.return_loan(db, loan.id, petugas, ItemCondition.LIGHT_DAMAGE)
    assert loan.status == LoanStatus.RETURNED
    assert loan.returned_at is not None
    assert loan.condition_at_return == ItemCondition.LIGHT_DAMAGE
    db.refresh(item)
    assert item.quantity_available == 5
    assert item.condition == ItemCondition.LIGHT_DAMAGE


def test_reject_leaves_stock_untouched(db, make_item, request_loan, admin):
    item = make_item(quantity=4)
    loan = request_loan(item, quantity=3)

    loan = loans.reject_loan(db, loan.id, admin, "tidak sesuai")

    assert loan.status == LoanStatus.REJECTED
    assert loan.staff_note == "tidak sesuai"
    db.refresh(item)
    assert item.quantity_available == 4


def test_reject_requires_reason(db, make_item, request_loan, admin):
    loan = request_loan(make_item())

    with pytest.raises(ValidationError, match="Alasan penolakan harus diisi"):
        loans.reject_loan(db, loan.id, admin, "   ")


def test_second_approval_fails_when_stock_runs_out(db, make_item, request_loan, petugas):
    item = make_item(quantity=3, available=1)
    first = request_loan(item)
    second = request_loan(item)

    loans.approve_loan(db, first.id, petugas)
    db.refresh(item)
    assert item.quantity_available == 0

    with pytest.raises(ValidationError, match=r"tersedia \(0\) tidak mencukupi"):
        loans.approve_loan(db, second.id, petugas)

    db.refresh(second)
    db.refresh(item)
    assert second.status == LoanStatus.PENDING
    assert item.quantity_available == 0


def test_active_loans_account_for_stock_in_use(db, make_item, request_loan, petugas):
    item = make_item(quantity=6)
    a = request_loan(item, quantity=2)
    b = request_loan(item, quantity=3)
    c = request_loan(item, quantity=1)

    loans.approve_loan(db, a.id, petugas)
    loans.approve_loan(db, b.id, petugas)
    loans.reject_loan(db, c.id, petugas, "Barang dipakai ujian")
    loans.return_loan(db, a.id, petugas, "baik")

    db.refresh(item)
    assert 0 <= item.quantity_available <= item.quantity_total
    assert active_quantity(db, item.id) == item.quantity_total - item.quantity_available == 3


@pytest.mark.parametrize("action", ["approve", "reject", "cancel", "return"])
@pytest.mark.parametrize("terminal", ["reject", "cancel", "return"])
def test_terminal_states_accept_no_transition(db, make_item, request_loan, petugas, borrower,
                                              terminal, action):
    item = make_item(quantity=2)
    loan = request_loan(item)
    if terminal == "reject":
        loans.reject_loan(db, loan.id, petugas, "stok untuk ujian")
    elif terminal == "cancel":
        loans.cancel_loan(db, loan.id, borrower)
    else:
        loans.approve_loan(db, loan.id, petugas)
        loans.return_loan(db, loan.id, petugas, "baik")
    db.refresh(item)
    available_before = item.quantity_available

    with pytest.raises(ValidationError, match="karena status saat ini adalah"):
        if action == "approve":
            loans.approve_loan(db, loan.id, petugas)
        elif action == "reject":
            loans.reject_loan(db, loan.id, petugas, "alasan")
        elif action == "cancel":
            loans.cancel_loan(db, loan.id, petugas)
        else:
            loans.return_loan(db, loan.id, petugas, "baik")

    db.refresh(item)
    assert item.quantity_available == available_before


def test_pending_loan_cannot_be_returned(db, make_item, request_loan, petugas):
    loan = request_loan(make_item())

    with pytest.raises(ValidationError, match="tidak dapat dikembalikan karena status saat ini adalah menunggu"):
        loans.return_loan(db, loan.id, petugas, "baik")


def test_active_loan_cannot_be_cancelled_or_rejected(db, make_item, request_loan, petugas, borrower):
    item = make_item(quantity=2)
    loan = request_loan(item)
    loans.approve_loan(db, loan.id, petugas)

    with pytest.raises(ValidationError, match="tidak dapat dibatalkan karena status saat ini adalah dipinjam"):
        loans.cancel_loan(db, loan.id, borrower)
    with pytest.raises(ValidationError, match="tidak dapat ditolak"):
        loans.reject_loan(db, loan.id, petugas, "alasan")

    db.refresh(item)
    assert item.quantity_available == 1


def test_duplicate_approval_reserves_once(db, make_item, request_loan, petugas, admin):
    item = make_item(quantity=5)
    loan = request_loan(item, quantity=2)

    loans.approve_loan(db, loan.id, petugas)
    with pytest.raises(ValidationError, match="tidak dapat disetujui"):
        loans.approve_loan(db, loan.id, admin)

    db.refresh(item)
    assert item.quantity_available == 3


def test_return_never_improves_condition(db, make_item, request_loan, petugas):
    item = make_item(quantity=1, condition=ItemCondition.LIGHT_DAMAGE)
    loan = request_loan(item)
    loans.approve_loan(db, loan.id, petugas)

    loan = loans.return_loan(db, loan.id, petugas, ItemCondition.GOOD)

    assert loan.condition_at_return == ItemCondition.GOOD
    db.refresh(item)
    assert item.condition == ItemCondition.LIGHT_DAMAGE


def test_return_requires_valid_condition(db, make_item, request_loan, petugas):
    loan = request_loan(make_item())
    loans.approve_loan(db, loan.id, petugas)

    with pytest.raises(ValidationError, match="Kondisi saat kembali harus diisi"):
        loans.return_loan(db, loan.id, petugas, None)
    with pytest.raises(ValidationError, match="Kondisi tidak valid"):
        loans.return_loan(db, loan.id, petugas, "hilang")

    db.refresh(loan)
    assert loan.status == LoanStatus.ACTIVE


def test_checkout_condition_is_recaptured_at_approval(db, make_item, request_loan, petugas):
    item = make_item(quantity=2)
    loan = request_loan(item)
    assert loan.condition_at_checkout == ItemCondition.GOOD

    item.condition = ItemCondition.LIGHT_DAMAGE
    db.commit()

    loan = loans.approve_loan(db, loan.id, petugas, staff_note="Ambil di ruang TU")
    assert loan.condition_at_checkout == ItemCondition.LIGHT_DAMAGE
    assert loan.staff_note == "Ambil di ruang TU"


@pytest.mark.parametrize("operation", ["approve", "reject", "return"])
def test_borrowers_cannot_process_loans(db, make_item, request_loan, borrower, operation):
    item = make_item()
    loan = request_loan(item)

    with pytest.raises(ForbiddenError):
        if operation == "approve":
            loans.approve_loan(db, loan.id, borrower)
        elif operation == "reject":
            loans.reject_loan(db, loan.id, borrower, "alasan")
        else:
            loans.return_loan(db, loan.id, borrower, "baik")

    db.refresh(loan)
    db.refresh(item)
    assert loan.status == LoanStatus.PENDING
    assert item.quantity_available == item.quantity_total


def test_borrower_can_cancel_own_pending_loan(db, make_item, request_loan, borrower):
    loan = request_loan(make_item())

    loan = loans.cancel_loan(db, loan.id, borrower)

    assert loan.status == LoanStatus.CANCELLED


def test_borrower_cannot_cancel_someone_elses_loan(db, make_item, request_loan, other_borrower):
    loan = request_loan(make_item())

    with pytest.raises(ForbiddenError, match="membatalkan"):
        loans.cancel_loan(db, loan.id, other_borrower)

    db.refresh(loan)
    assert loan.status == LoanStatus.PENDING


def test_staff_can_cancel_any_pending_loan(db, make_item, request_loan, admin):
    loan = request_loan(make_item())

    assert loans.cancel_loan(db, loan.id, admin).status == LoanStatus.CANCELLED


def test_staff_may_request_loans_for_themselves(db, make_item, request_loan, petugas):
    loan = request_loan(make_item(), user=petugas)

    assert loan.user_id == petugas.id
    assert loan.status == LoanStatus.PENDING


def test_create_requires_all_fields(db, make_item, borrower, loan_dates):
    item = make_item()
    start, due = loan_dates

    with pytest.raises(ValidationError, match="harus diisi"):
        loans.create_loan(db, borrower, item_id=item.id, requested_start=start,
                          requested_due=due, purpose="  ")
    with pytest.raises(ValidationError, match="harus diisi"):
        loans.create_loan(db, borrower, item_id=None, requested_start=start,
                          requested_due=due, purpose="Praktikum")


def test_create_rejects_due_before_start(db, make_item, request_loan, borrower, loan_dates):
    start, _ = loan_dates

    with pytest.raises(ValidationError, match="Tanggal kembali harus setelah tanggal pinjam"):
        loans.create_loan(db, borrower, item_id=make_item().id, requested_start=start,
                          requested_due=start, purpose="Praktikum")


def test_create_rejects_zero_quantity(db, make_item, request_loan):
    with pytest.raises(ValidationError, match="minimal 1"):
        request_loan(make_item(), quantity=0)


def test_create_rejects_quantity_above_available(db, make_item, request_loan):
    item = make_item(quantity=5, available=2)

    with pytest.raises(ValidationError, match=r"tersedia \(2\) tidak mencukupi"):
        request_loan(item, quantity=3)
    assert db.query(Loan).count() == 0


def test_create_unknown_item(db, borrower, loan_dates):
    start, due = loan_dates

    with pytest.raises(NotFoundError, match="Barang tidak ditemukan"):
        loans.create_loan(db, borrower, item_id=404, requested_start=start,
                          requested_due=due, purpose="Praktikum")


def test_borrower_cannot_backdate_start(db, make_item, borrower, petugas):
    item = make_item()
    start = utcnow() - timedelta(days=2)
    due = utcnow() + timedelta(days=2)

    with pytest.raises(ValidationError, match="masa lalu"):
        loans.create_loan(db, borrower, item_id=item.id, requested_start=start,
                          requested_due=due, purpose="Praktikum")

    loan = loans.create_loan(db, petugas, item_id=item.id, requested_start=start,
                             requested_due=due, purpose="Pencatatan susulan")
    assert loan.status == LoanStatus.PENDING


def test_open_loan_cap_is_enforced_when_configured(db, make_item, request_loan, monkeypatch):
    monkeypatch.setattr(settings, "MAX_ACTIVE_LOANS_PER_USER", 2)
    item = make_item(quantity=5)
    request_loan(item)
    request_loan(item)

    with pytest.raises(ValidationError, match="Batas maksimal 2"):
        request_loan(item)


def test_open_loan_cap_is_disabled_by_default(db, make_item, request_loan, borrower):
    assert settings.MAX_ACTIVE_LOANS_PER_USER == 0
    item = make_item(quantity=5)

    for _ in range(5):
        request_loan(item)

    assert loans.count_open_loans(db, borrower.id) == 5


def test_unknown_loan(db, petugas):
    with pytest.raises(NotFoundError, match="Peminjaman tidak ditemukan"):
        loans.approve_loan(db, 12345, petugas)


def test_every_transition_is_logged(db, make_item, request_loan, borrower, petugas):
    loan = request_loan(make_item())
    loans.approve_loan(db, loan.id, petugas, staff_note="OK")
    loans.return_loan(db, loan.id, petugas, "rusak_ringan", note="Lecet di lensa")

    events = db.query(LoanEvent).filter(LoanEvent.loan_id == loan.id).order_by(LoanEvent.id).all()

    assert [(e.from_status, e.to_status) for e in events] == [
        (None, LoanStatus.PENDING),
        (LoanStatus.PENDING, LoanStatus.ACTIVE),
        (LoanStatus.ACTIVE, LoanStatus.RETURNED),
    ]
    assert [e.actor_id for e in events] == [borrower.id, petugas.id, petugas.id]
    assert events[-1].note == "Lecet di lensa"


def test_failed_transition_writes_no_event(db, make_item, request_loan, petugas):
    item = make_item(quantity=1)
    pending = request_loan(item)
    item.quantity_available = 0
    db.commit()

    with pytest.raises(ValidationError):
        loans.approve_loan(db, pending.id, petugas)

    assert db.query(LoanEvent).filter(LoanEvent.loan_id == pending.id).count() == 1


@pytest.mark.parametrize("current, target, allowed", [
    (LoanStatus.PENDING, LoanStatus.ACTIVE, True),
    (LoanStatus.PENDING, LoanStatus.REJECTED, True),
    (LoanStatus.PENDING, LoanStatus.CANCELLED, True),
    (LoanStatus.PENDING, LoanStatus.RETURNED, False),
    (LoanStatus.ACTIVE, LoanStatus.RETURNED, True),
    (LoanStatus.ACTIVE, LoanStatus.CANCELLED, False),
    (LoanStatus.RETURNED, LoanStatus.ACTIVE, False),
    (LoanStatus.REJECTED, LoanStatus.PENDING, False),
    (LoanStatus.CANCELLED, LoanStatus.ACTIVE, False),
])
def test_transition_table(current, target, allowed):
    assert loans.can_transition(current, target) is allowed


def test_loan_record_rejects_due_not_after_start(borrower, make_item):
    item = make_item()
    start = utcnow() + timedelta(days=1)

    with pytest.raises(ValidationError, match="Tanggal kembali harus setelah tanggal pinjam"):
        Loan(user_id=borrower.id, item_id=item.id, purpose="Praktikum",
             requested_start=start, requested_due=start - timedelta(hours=1))
    with pytest.raises(ValidationError, match="Tanggal kembali harus setelah tanggal pinjam"):
        Loan(user_id=borrower.id, item_id=item.id, purpose="Praktikum",
             requested_due=start, requested_start=start)


def test_loan_record_rejects_moving_due_before_start(db, make_item, request_loan):
    loan = request_loan(make_item())

    with pytest.raises(ValidationError):
        loan.requested_due = loan.requested_start - timedelta(days=1)


def test_start_today_in_borrowers_timezone_is_accepted(db, make_item, borrower):
    item = make_item()
    jakarta = timezone(timedelta(hours=7))
    # 00:30 local is still the previous day in UTC
    start = datetime.now(jakarta).replace(hour=0, minute=30, second=0, microsecond=0)

    loan = loans.create_loan(db, borrower, item_id=item.id, requested_start=start,
                             requested_due=start + timedelta(days=2), purpose="Praktikum")

    assert loan.status == LoanStatus.PENDING
    assert loan.requested_start == start.astimezone(timezone.utc).replace(tzinfo=None)


def test_start_yesterday_in_borrowers_timezone_is_rejected(db, make_item, borrower):
    item = make_item()
    jakarta = timezone(timedelta(hours=7))
    start = datetime.now(jakarta).replace(hour=23, minute=30) - timedelta(days=1)

    with pytest.raises(ValidationError, match="masa lalu"):
        loans.create_loan(db, borrower, item_id=item.id, requested_start=start,
                          requested_due=start + timedelta(days=2), purpose="Praktikum")
