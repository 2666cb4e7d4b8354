import logging
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.core.exceptions import StorageError
from app.models.debt import Debt
from app.models.enums import TransactionType
from app.models.monthly_balance import MonthlyBalance
from app.models.transaction import Transaction, TransactionMember
from app.utils.netting import DebtEdge, compute_edges

logger = logging.getLogger(__name__)


def commit_or_raise(session: Session) -> None:
    """Confirma la unidad atómica; ante cualquier falla revierte todo."""
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Falló la confirmación de la escritura; se revirtió la transacción")
        raise StorageError("No fue posible guardar los cambios. Intenta de nuevo.", original=exc) from exc


def flush_or_raise(session: Session) -> None:
    try:
        session.flush()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Falló la escritura intermedia; se revirtió la transacción")
        raise StorageError("No fue posible guardar los cambios. Intenta de nuevo.", original=exc) from exc


def replace_edges(session: Session, transaction_id: UUID, edges: Iterable[DebtEdge]) -> List[Debt]:
    # Borrado + inserción en la misma sesión: nadie ve el estado intermedio
    session.execute(delete(Debt).where(Debt.transaction_id == transaction_id))
    rows = [
        Debt(
            transaction_id=transaction_id,
            debtor_id=edge.debtor_id,
            creditor_id=edge.creditor_id,
            amount=edge.amount,
        )
        for edge in edges
    ]
    session.add_all(rows)
    return rows


def recompute_edges(session: Session, tx: Transaction) -> List[Debt]:
    edges = compute_edges(tx)
    rows = replace_edges(session, tx.id, edges)
    logger.debug("Transacción %s: %d aristas de deuda", tx.id, len(rows))
    return rows


def sync_members(session: Session, tx: Transaction) -> None:
    session.execute(delete(TransactionMember).where(TransactionMember.transaction_id == tx.id))
    session.add_all(
        TransactionMember(transaction_id=tx.id, user_id=user_id)
        for user_id in sorted(tx.member_ids(), key=str)
    )


def query_edges(session: Session, user_id: UUID) -> List[Debt]:
    """Aristas donde el usuario es deudor o acreedor, solo de transacciones vigentes."""
    return session.exec(
        select(Debt)
        .join(Transaction, Transaction.id == Debt.transaction_id)
        .where(or_(Debt.debtor_id == user_id, Debt.creditor_id == user_id))
        .where(Transaction.deleted_at.is_(None))
        .order_by(Debt.created_at, Debt.id)
    ).all()


def query_transactions(
    user_id: UUID,
    *,
    include_deleted: bool = False,
    tx_type: Optional[TransactionType] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """Consulta de las transacciones a las que el usuario tiene acceso."""
    query = (
        select(Transaction)
        .join(TransactionMember, TransactionMember.transaction_id == Transaction.id)
        .where(TransactionMember.user_id == user_id)
    )
    if not include_deleted:
        query = query.where(Transaction.deleted_at.is_(None))
    if tx_type:
        query = query.where(Transaction.type == tx_type)
    if start_date:
        query = query.where(Transaction.date >= start_date)
    if end_date:
        query = query.where(Transaction.date <= end_date)
    return query


def upsert_monthly_balance(
    session: Session, user_id: UUID, month_year: str, opening: float, closing: float
) -> MonthlyBalance:
    row = session.exec(
        select(MonthlyBalance).where(
            MonthlyBalance.user_id == user_id,
            MonthlyBalance.month_year == month_year,
        )
    ).first()
    if row is None:
        row = MonthlyBalance(user_id=user_id, month_year=month_year)
    if row.opening_balance != opening or row.closing_balance != closing or row.id is None:
        row.opening_balance = opening
        row.closing_balance = closing
        row.updated_at = datetime.utcnow()
        session.add(row)
    return row
