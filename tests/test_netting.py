from datetime import datetime
from uuid import UUID

from app.models.enums import TransactionType
from app.models.transaction import Transaction
from app.schemas.transaction import Payer, SplitParticipant
from app.utils.netting import DebtEdge, compute_edges, match_debts, net_positions, settlement_edge

A = UUID("00000000-0000-0000-0000-00000000000a")
B = UUID("00000000-0000-0000-0000-00000000000b")
C = UUID("00000000-0000-0000-0000-00000000000c")
D = UUID("00000000-0000-0000-0000-00000000000d")


def _shared(amount, payers, shares, method="equally", **extra):
    return Transaction(
        creator_id=payers[0][0],
        type=TransactionType.shared,
        amount=amount,
        description="cena",
        date=datetime(2026, 3, 10),
        payers=[{"user_id": str(u), "amount_paid": a} for u, a in payers],
        split_details={
            "method": method,
            "participants": [{"user_id": str(u), "share_amount": s} for u, s in shares],
        },
        **extra,
    )


def _zero_sum(edges, users):
    net = {u: 0.0 for u in users}
    for e in edges:
        net[e.debtor_id] -= e.amount
        net[e.creditor_id] += e.amount
    return net


def test_one_payer_equal_split():
    edges = compute_edges(_shared(100, [(A, 100)], [(A, 50), (B, 50)]))
    assert edges == [DebtEdge(debtor_id=B, creditor_id=A, amount=50)]


def test_three_way_dinner_paid_by_one():
    edges = compute_edges(_shared(90, [(C, 90)], [(A, 30), (B, 30), (C, 30)]))
    assert {(e.debtor_id, e.creditor_id, e.amount) for e in edges} == {(A, C, 30), (B, C, 30)}
    # Empate de montos: orden por id
    assert [e.debtor_id for e in edges] == [A, B]


def test_multiple_payers_minimal_edges():
    payers = [(A, 60), (B, 40)]
    shares = [(A, 25), (B, 25), (C, 25), (D, 25)]
    edges = compute_edges(_shared(100, payers, shares))

    assert len(edges) <= 3
    assert all(e.amount > 0 for e in edges)
    expected = net_positions(
        [Payer(user_id=u, amount_paid=a) for u, a in payers],
        [SplitParticipant(user_id=u, share_amount=s) for u, s in shares],
    )
    got = _zero_sum(edges, [A, B, C, D])
    for user, amount in expected.items():
        assert abs(got[user] - amount) <= 0.01


def test_participant_without_share_difference_gets_no_edge():
    edges = compute_edges(_shared(60, [(A, 30), (B, 30)], [(A, 30), (B, 30)]))
    assert edges == []


def test_cent_rounding_leftover_is_dropped():
    # 100 / 3 no es exacto; el centavo sobrante no genera arista
    edges = compute_edges(_shared(100, [(A, 100)], [(A, 33.34), (B, 33.33), (C, 33.33)]))
    assert {(e.debtor_id, e.amount) for e in edges} == {(B, 33.33), (C, 33.33)}


def test_match_debts_is_deterministic():
    net = {C: -10.0, B: -10.0, A: 20.0}
    assert match_debts(net) == match_debts(dict(reversed(list(net.items()))))


def test_deleted_transaction_has_no_edges():
    tx = _shared(100, [(A, 100)], [(A, 50), (B, 50)], deleted_at=datetime(2026, 3, 11))
    assert compute_edges(tx) == []


def test_recompute_is_idempotent():
    tx = _shared(90, [(C, 90)], [(A, 30), (B, 30), (C, 30)])
    assert compute_edges(tx) == compute_edges(tx)


def test_personal_without_split_has_no_edges():
    tx = Transaction(
        creator_id=A,
        type=TransactionType.personal,
        amount=20,
        payers=[{"user_id": str(A), "amount_paid": 20}],
    )
    assert compute_edges(tx) == []


def test_settlement_paid_offsets_prior_debt():
    tx = Transaction(
        creator_id=A,
        type=TransactionType.personal,
        amount=50,
        description="SETTLEMENT: Paid b@gastos.co",
        payers=[{"user_id": str(A), "amount_paid": 50}],
        split_details={"method": "settlement", "participants": [{"user_id": str(B), "share_amount": 50}]},
    )
    assert compute_edges(tx) == [DebtEdge(debtor_id=B, creditor_id=A, amount=50)]


def test_settlement_received_direction():
    edge = settlement_edge(TransactionType.revenue, A, B, 20)
    assert edge == DebtEdge(debtor_id=A, creditor_id=B, amount=20)
