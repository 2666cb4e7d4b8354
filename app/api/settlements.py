from uuid import UUID
from fastapi import APIRouter, Depends
from sqlmodel import Session
from app.database import engine
from app.core.exceptions import UnresolvedCounterpartyError, ValidationError
from app.core.security import get_current_user
from app.models.enums import TransactionType
from app.models.user import User
from app.schemas.transaction import (
    Payer,
    SettlementCreate,
    SettlementSplit,
    SplitParticipant,
    TransactionCreate,
    TransactionRead,
)
from app.utils.ledger_helpers import commit_or_raise
from app.utils.transaction_helpers import create_ledger_transaction, get_user_or_401, publish_write
from app.utils.user_helpers import get_user_by_email
from app.utils.validation import settlement_description

router = APIRouter(prefix="/settlements", tags=["settlements"])


def _resolve_counterparty(session: Session, data: SettlementCreate) -> User:
    if data.counterparty_id is not None:
        counterparty = session.get(User, data.counterparty_id)
        if not counterparty:
            raise UnresolvedCounterpartyError(str(data.counterparty_id))
        return counterparty
    if data.counterparty_email:
        counterparty = get_user_by_email(session, data.counterparty_email)
        if not counterparty:
            raise UnresolvedCounterpartyError(data.counterparty_email)
        return counterparty
    raise ValidationError(["Debes indicar la contraparte de la liquidación."])


@router.post("", response_model=TransactionRead)
@router.post("/", response_model=TransactionRead)
def settle_up(
    data: SettlementCreate,
    user_id: UUID = Depends(get_current_user),
):
    """
    "Le pagué a X" se guarda como gasto personal y "X me pagó" como ingreso;
    ambos llevan la etiqueta SETTLEMENT en la descripción.
    """
    with Session(engine) as session:
        user = get_user_or_401(session, user_id)
        counterparty = _resolve_counterparty(session, data)

        tx_data = TransactionCreate(
            type=TransactionType.personal if data.direction == "paid" else TransactionType.revenue,
            amount=data.amount,
            payment_mode=data.payment_mode,
            description=settlement_description(data.direction, counterparty.email),
            date=data.date,
            payers=[Payer(user_id=user.id, amount_paid=data.amount)],
            split_details=SettlementSplit(
                participants=[SplitParticipant(user_id=counterparty.id, share_amount=data.amount)]
            ),
        )
        tx = create_ledger_transaction(session, tx_data, user)
        commit_or_raise(session)
        session.refresh(tx)
        publish_write("created", tx)
        return TransactionRead.model_validate(tx)
