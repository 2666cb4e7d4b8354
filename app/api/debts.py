from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from uuid import UUID
from typing import List

from app.database import engine
from app.models.debt import Debt
from app.schemas.debt import DebtRead
from app.core.security import get_current_user
from app.utils.ledger_helpers import query_edges
from app.utils.transaction_helpers import get_accessible_transaction

router = APIRouter(prefix="/debts", tags=["debts"])


@router.get("/", response_model=List[DebtRead])
def get_debts(user_id: UUID = Depends(get_current_user)):
    """Aristas vigentes donde el usuario es deudor o acreedor."""
    with Session(engine) as session:
        return [DebtRead.model_validate(d) for d in query_edges(session, user_id)]


@router.get("/transactions/{transaction_id}", response_model=List[DebtRead])
def get_transaction_debts(
    transaction_id: UUID,
    user_id: UUID = Depends(get_current_user),
):
    with Session(engine) as session:
        get_accessible_transaction(session, transaction_id, user_id)
        debts = session.exec(
            select(Debt).where(Debt.transaction_id == transaction_id).order_by(Debt.id)
        ).all()
        return [DebtRead.model_validate(d) for d in debts]
