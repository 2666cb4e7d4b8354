import datetime as dt
import logging
from typing import Iterable, List, Optional, Set
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.core.exceptions import StorageError, UnresolvedCounterpartyError, ValidationError
from app.models.enums import ActivityAction, SplitMethod, TransactionType
from app.models.transaction import Transaction
from app.models.user import User
from app.realtime.change_feed import DEBTS, MONTHLY_BALANCES, TRANSACTIONS, change_feed
from app.schemas.transaction import (
    Payer,
    SettlementSplit,
    SplitParticipant,
    TransactionCreate,
    TransactionUpdate,
    dump_payers,
    dump_split_details,
    parse_payers,
    parse_split_details,
)
from app.utils.balance_helpers import recarry_forward
from app.utils.ledger_helpers import flush_or_raise, recompute_edges, sync_members
from app.utils.user_helpers import get_user_by_email, unknown_user_ids
from app.utils.validation import collect_errors, parse_settlement_tag

logger = logging.getLogger(__name__)


def normalize_dt(value: Optional[dt.datetime]) -> dt.datetime:
    """Normaliza a datetime naive en UTC."""
    if value is None:
        return dt.datetime.utcnow()
    if value.tzinfo:
        return value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return value


def get_user_or_401(session: Session, user_id: UUID) -> User:
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Usuario no encontrado")
    return user


def get_accessible_transaction(session: Session, transaction_id: UUID, user_id: UUID) -> Transaction:
    tx = session.get(Transaction, transaction_id)
    if not tx:
        raise HTTPException(status_code=404, detail="Transacción no encontrada")
    if user_id not in tx.member_ids():
        raise HTTPException(status_code=403, detail="No tienes acceso a esta transacción")
    return tx


def append_activity(tx: Transaction, action: ActivityAction, user: User) -> None:
    entry = {
        "action": action.value,
        "user_id": str(user.id),
        "user_name": user.name,
        "timestamp": dt.datetime.utcnow().isoformat(),
    }
    # Lista nueva para que el cambio en la columna JSON se detecte
    tx.activity_log = list(tx.activity_log or []) + [entry]


def resolve_settlement(
    session: Session,
    tx_type: TransactionType,
    description: str,
    amount: float,
    split,
):
    """
    Completa el reparto de una liquidación. Si la descripción trae la etiqueta
    pero no hay reparto, la contraparte se busca por el correo de la etiqueta.
    """
    if tx_type == TransactionType.shared:
        return split

    if split is None:
        tag = parse_settlement_tag(description)
        if tag is None:
            return None
        _, email = tag
        counterparty = get_user_by_email(session, email)
        if counterparty is None:
            raise UnresolvedCounterpartyError(email)
        return SettlementSplit(
            participants=[SplitParticipant(user_id=counterparty.id, share_amount=amount)]
        )

    if split.method == SplitMethod.settlement.value:
        counterparty_id = split.counterparty_id
        if counterparty_id is not None and session.get(User, counterparty_id) is None:
            raise UnresolvedCounterpartyError(str(counterparty_id))
    return split


def check_transaction(
    session: Session,
    tx_type: TransactionType,
    amount: float,
    payers: List[Payer],
    split,
    creator_id: UUID,
    description: str,
) -> None:
    """Reúne todos los problemas (forma y usuarios desconocidos) y los reporta juntos."""
    errors = collect_errors(tx_type, amount, payers, split, creator_id, description)

    referenced: Set[UUID] = {p.user_id for p in payers}
    if split is not None:
        referenced.update(p.user_id for p in split.participants)
    for user_id in unknown_user_ids(session, referenced):
        errors.append(f"Usuario desconocido: {user_id}")

    tag = parse_settlement_tag(description)
    if tag is not None and split is not None and split.method == SplitMethod.settlement.value:
        tagged = get_user_by_email(session, tag[1])
        if tagged is None or tagged.id != split.counterparty_id:
            errors.append("La contraparte de la descripción no coincide con el reparto.")

    if errors:
        raise ValidationError(errors)


def apply_derived_state(session: Session, tx: Transaction, affected: Iterable[UUID]) -> None:
    """Miembros, aristas y saldos mensuales en la misma unidad atómica."""
    tx_id = tx.id
    try:
        flush_or_raise(session)
        sync_members(session, tx)
        recompute_edges(session, tx)
        flush_or_raise(session)
        for user_id in sorted(set(affected), key=str):
            recarry_forward(session, user_id)
        flush_or_raise(session)
    except SQLAlchemyError as exc:
        # Fila, bitácora, aristas y saldos se revierten juntos
        session.rollback()
        logger.exception("Falló el recálculo de la transacción %s; se revirtió la escritura", tx_id)
        raise StorageError("No fue posible guardar los cambios. Intenta de nuevo.", original=exc) from exc


def publish_write(action: str, tx: Transaction, previous_members: Iterable[UUID] = ()) -> None:
    """Avisa solo a los miembros actuales y a quienes dejaron de serlo."""
    record_id = str(tx.id)
    audience = tx.member_ids() | set(previous_members)
    change_feed.publish(TRANSACTIONS, action, record_id, audience=audience)
    change_feed.publish(DEBTS, action, record_id, audience=audience)
    change_feed.publish(MONTHLY_BALANCES, action, record_id, audience=audience)


def create_ledger_transaction(session: Session, data: TransactionCreate, user: User) -> Transaction:
    split = resolve_settlement(session, data.type, data.description, data.amount, data.split_details)
    check_transaction(session, data.type, data.amount, data.payers, split, user.id, data.description)

    tx = Transaction(
        creator_id=user.id,
        type=data.type,
        amount=data.amount,
        payment_mode=data.payment_mode,
        description=data.description,
        date=normalize_dt(data.date),
        category=data.category,
        payers=dump_payers(data.payers),
        split_details=dump_split_details(split),
    )
    append_activity(tx, ActivityAction.created, user)
    session.add(tx)
    apply_derived_state(session, tx, tx.member_ids())
    logger.info("Transacción %s creada por %s", tx.id, user.id)
    return tx


def update_ledger_transaction(session: Session, tx: Transaction, data: TransactionUpdate, user: User) -> Transaction:
    if tx.is_deleted:
        raise HTTPException(status_code=400, detail="No se puede editar una transacción eliminada")

    before = tx.member_ids()

    tx_type = data.type or TransactionType(tx.type)
    amount = data.amount if data.amount is not None else tx.amount
    description = data.description if data.description is not None else tx.description
    payers = data.payers if data.payers is not None else parse_payers(tx.payers)
    if data.clear_split_details:
        split = None
    elif data.split_details is not None:
        split = data.split_details
    else:
        split = parse_split_details(tx.split_details)

    split = resolve_settlement(session, tx_type, description, amount, split)
    check_transaction(session, tx_type, amount, payers, split, UUID(str(tx.creator_id)), description)

    tx.type = tx_type
    tx.amount = amount
    tx.description = description
    tx.payers = dump_payers(payers)
    tx.split_details = dump_split_details(split)
    if data.payment_mode is not None:
        tx.payment_mode = data.payment_mode
    if data.date is not None:
        tx.date = normalize_dt(data.date)
    if data.category is not None:
        tx.category = data.category
    tx.updated_at = dt.datetime.utcnow()
    append_activity(tx, ActivityAction.updated, user)
    session.add(tx)

    apply_derived_state(session, tx, before | tx.member_ids())
    logger.info("Transacción %s actualizada por %s", tx.id, user.id)
    return tx


def delete_ledger_transaction(session: Session, tx: Transaction, user: User) -> Transaction:
    if tx.is_deleted:
        raise HTTPException(status_code=400, detail="La transacción ya fue eliminada")

    now = dt.datetime.utcnow()
    tx.deleted_at = now
    tx.updated_at = now
    append_activity(tx, ActivityAction.deleted, user)
    session.add(tx)

    apply_derived_state(session, tx, tx.member_ids())
    logger.info("Transacción %s eliminada por %s", tx.id, user.id)
    return tx
