from datetime import date, datetime
from uuid import UUID

from app.models.enums import TransactionType
from app.models.transaction import Transaction
from app.utils.balance_helpers import MonthRow, carry_forward, monthly_totals

A = UUID("00000000-0000-0000-0000-00000000000a")
B = UUID("00000000-0000-0000-0000-00000000000b")

TODAY = date(2026, 4, 15)


def _tx(tx_type, amount, when, creator=A, payers=None, **extra):
    return Transaction(
        creator_id=creator,
        type=tx_type,
        amount=amount,
        date=when,
        payers=payers or [{"user_id": str(creator), "amount_paid": amount}],
        **extra,
    )


def test_no_transactions_fills_current_month():
    assert carry_forward(A, [], today=TODAY) == [MonthRow("2026-04", 0.0, 0.0)]


def test_telescoping_across_gap_months():
    transactions = [
        _tx(TransactionType.revenue, 1000, datetime(2026, 1, 5)),
        _tx(TransactionType.personal, 200, datetime(2026, 1, 20)),
        _tx(TransactionType.personal, 300, datetime(2026, 3, 2)),
    ]
    rows = carry_forward(A, transactions, today=TODAY)

    assert [r.month_year for r in rows] == ["2026-01", "2026-02", "2026-03", "2026-04"]
    assert rows[0] == MonthRow("2026-01", 0.0, 800.0)
    assert rows[1] == MonthRow("2026-02", 800.0, 800.0)
    assert rows[2] == MonthRow("2026-03", 800.0, 500.0)
    assert rows[3] == MonthRow("2026-04", 500.0, 500.0)
    for prev, nxt in zip(rows, rows[1:]):
        assert nxt.opening_balance == prev.closing_balance


def test_year_boundary():
    transactions = [_tx(TransactionType.revenue, 50, datetime(2025, 12, 31))]
    rows = carry_forward(A, transactions, today=date(2026, 1, 2))
    assert [r.month_year for r in rows] == ["2025-12", "2026-01"]


def test_shared_counts_own_payment_not_share():
    shared = _tx(
        TransactionType.shared,
        90,
        datetime(2026, 4, 1),
        creator=B,
        payers=[{"user_id": str(A), "amount_paid": 60}, {"user_id": str(B), "amount_paid": 30}],
        split_details={
            "method": "equally",
            "participants": [
                {"user_id": str(A), "share_amount": 45},
                {"user_id": str(B), "share_amount": 45},
            ],
        },
    )
    totals = monthly_totals(A, [shared])
    assert totals["2026-04"].spent == 60
    assert totals["2026-04"].revenue == 0


def test_other_users_revenue_is_ignored():
    revenue = _tx(TransactionType.revenue, 100, datetime(2026, 4, 1), creator=B)
    assert carry_forward(A, [revenue], today=TODAY) == [MonthRow("2026-04", 0.0, 0.0)]


def test_deleted_transactions_are_excluded():
    deleted = _tx(TransactionType.revenue, 100, datetime(2026, 4, 1), deleted_at=datetime(2026, 4, 2))
    assert carry_forward(A, [deleted], today=TODAY) == [MonthRow("2026-04", 0.0, 0.0)]


def test_future_month_extends_past_current():
    transactions = [_tx(TransactionType.revenue, 10, datetime(2026, 6, 1))]
    rows = carry_forward(A, transactions, today=TODAY)
    assert [r.month_year for r in rows] == ["2026-04", "2026-05", "2026-06"]
    assert rows[-1].closing_balance == 10
