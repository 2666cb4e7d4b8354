import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlmodel import Session, select

from app.models.connection import ConnectionStatus, UserConnection
from app.models.debt import Debt
from app.models.enums import TransactionType
from app.models.monthly_balance import MonthlyBalance
from app.models.transaction import Transaction
from app.schemas.balance import BalanceDetail, FriendBalanceRead
from app.utils.ledger_helpers import query_edges, query_transactions, upsert_monthly_balance
from app.utils.user_helpers import resolve_profiles

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Saldos por amigo
# ---------------------------------------------------------------------------

def accepted_friend_ids(session: Session, user_id: UUID) -> List[UUID]:
    connections = session.exec(
        select(UserConnection).where(
            UserConnection.status == ConnectionStatus.accepted,
            or_(UserConnection.user_id_1 == user_id, UserConnection.user_id_2 == user_id),
        )
    ).all()
    return [c.user_id_2 if c.user_id_1 == user_id else c.user_id_1 for c in connections]


def net_by_counterparty(user_id: UUID, edges: Iterable[Debt]) -> Dict[UUID, float]:
    balances: Dict[UUID, float] = defaultdict(float)
    for edge in edges:
        if edge.creditor_id == user_id:
            balances[edge.debtor_id] += edge.amount
        elif edge.debtor_id == user_id:
            balances[edge.creditor_id] -= edge.amount
    return dict(balances)


def friend_balances(session: Session, user_id: UUID) -> List[FriendBalanceRead]:
    """Un saldo por amigo; los amigos sin movimientos aparecen en cero."""
    balances = net_by_counterparty(user_id, query_edges(session, user_id))
    for friend_id in accepted_friend_ids(session, user_id):
        balances.setdefault(friend_id, 0.0)
    balances.pop(user_id, None)

    profiles = resolve_profiles(session, balances.keys())
    result = []
    for friend_id, balance in balances.items():
        profile = profiles.get(friend_id)
        result.append(
            FriendBalanceRead(
                friend_id=friend_id,
                friend_name=profile.display_name if profile else None,
                friend_email=profile.email if profile else None,
                balance=round(balance, 2) + 0.0,  # evita -0.0
            )
        )
    result.sort(key=lambda b: (-abs(b.balance), b.friend_name or "", str(b.friend_id)))
    return result


def balance_breakdown(session: Session, user_id: UUID, friend_id: UUID) -> List[BalanceDetail]:
    """Aporte firmado de cada transacción al saldo con un amigo."""
    rows = session.exec(
        select(Debt, Transaction)
        .join(Transaction, Transaction.id == Debt.transaction_id)
        .where(Transaction.deleted_at.is_(None))
        .where(
            or_(
                (Debt.debtor_id == friend_id) & (Debt.creditor_id == user_id),
                (Debt.debtor_id == user_id) & (Debt.creditor_id == friend_id),
            )
        )
        .order_by(Transaction.date.desc())
    ).all()

    per_tx: Dict[UUID, BalanceDetail] = {}
    for edge, tx in rows:
        signed = edge.amount if edge.creditor_id == user_id else -edge.amount
        if tx.id in per_tx:
            per_tx[tx.id].amount = round(per_tx[tx.id].amount + signed, 2)
        else:
            per_tx[tx.id] = BalanceDetail(
                transaction_id=tx.id,
                description=tx.description,
                amount=round(signed, 2),
                date=tx.date,
            )
    return list(per_tx.values())


# ---------------------------------------------------------------------------
# Saldo mensual arrastrado
# ---------------------------------------------------------------------------

@dataclass
class MonthTotals:
    revenue: float = 0.0
    spent: float = 0.0


@dataclass(frozen=True)
class MonthRow:
    month_year: str
    opening_balance: float
    closing_balance: float


def month_key(value) -> str:
    return value.strftime("%Y-%m")


def _next_month(month_year: str) -> str:
    year, month = (int(part) for part in month_year.split("-"))
    if month == 12:
        return f"{year + 1:04d}-01"
    return f"{year:04d}-{month + 1:02d}"


def monthly_totals(user_id: UUID, transactions: Iterable[Transaction]) -> Dict[str, MonthTotals]:
    totals: Dict[str, MonthTotals] = defaultdict(MonthTotals)
    for tx in transactions:
        if tx.is_deleted:
            continue
        tx_type = TransactionType(tx.type)
        is_creator = tx.creator_id == user_id
        bucket = totals[month_key(tx.date)]

        if tx_type == TransactionType.revenue and is_creator:
            bucket.revenue += tx.amount
        elif tx_type == TransactionType.personal and is_creator:
            bucket.spent += tx.amount
        elif tx_type == TransactionType.shared:
            # Lo que salió de su bolsillo, no la cuota que le tocaba
            bucket.spent += sum(
                float(p["amount_paid"]) for p in tx.payers or []
                if UUID(str(p["user_id"])) == user_id
            )
    return totals


def carry_forward(
    user_id: UUID, transactions: Iterable[Transaction], today: Optional[date] = None
) -> List[MonthRow]:
    """
    Recorre los meses en orden: la apertura de cada mes es el cierre del
    anterior. Los meses sin movimientos (incluido el actual) se rellenan con
    apertura = cierre = cierre previo.
    """
    totals = monthly_totals(user_id, transactions)
    current = month_key(today or datetime.utcnow().date())

    if not totals:
        return [MonthRow(current, 0.0, 0.0)]

    last = max(max(totals), current)
    rows: List[MonthRow] = []
    closing = 0.0
    month = min(min(totals), current)
    while True:
        data = totals.get(month, MonthTotals())
        opening = closing
        closing = round(opening + data.revenue - data.spent, 2)
        rows.append(MonthRow(month, opening, closing))
        if month >= last:
            break
        month = _next_month(month)
    return rows


def recarry_forward(
    session: Session, user_id: UUID, today: Optional[date] = None
) -> List[MonthlyBalance]:
    transactions = session.exec(query_transactions(user_id)).all()
    rows = carry_forward(user_id, transactions, today)

    keep = {row.month_year for row in rows}
    stale = session.exec(
        select(MonthlyBalance).where(
            MonthlyBalance.user_id == user_id,
            MonthlyBalance.month_year.not_in(keep),
        )
    ).all()
    for row in stale:
        session.delete(row)

    stored = [
        upsert_monthly_balance(session, user_id, row.month_year, row.opening_balance, row.closing_balance)
        for row in rows
    ]
    logger.debug("Usuario %s: %d meses recalculados", user_id, len(stored))
    return stored
