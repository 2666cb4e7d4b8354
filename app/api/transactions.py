from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlmodel import Session, select
from app.database import engine
from app.models.enums import TransactionType
from app.models.transaction import Transaction
from app.schemas.transaction import (
    TransactionCreate,
    TransactionRead,
    TransactionUpdate,
    TransactionWithProfilesRead,
)
from app.core.security import get_current_user
from app.utils.ledger_helpers import commit_or_raise, query_transactions
from app.utils.transaction_helpers import (
    create_ledger_transaction,
    delete_ledger_transaction,
    get_accessible_transaction,
    get_user_or_401,
    normalize_dt,
    publish_write,
    update_ledger_transaction,
)
from app.utils.user_helpers import resolve_profiles
import datetime as dt
from typing import Optional

router = APIRouter(prefix="/transactions", tags=["transactions"])

@router.post("", response_model=TransactionRead)
@router.post("/", response_model=TransactionRead)
def create_transaction(
    transaction_data: TransactionCreate,
    user_id: UUID = Depends(get_current_user)
):
    with Session(engine) as session:
        user = get_user_or_401(session, user_id)
        tx = create_ledger_transaction(session, transaction_data, user)
        commit_or_raise(session)
        session.refresh(tx)
        publish_write("created", tx)
        return TransactionRead.model_validate(tx)


@router.get("", response_model=dict)
@router.get("/", response_model=dict)
def list_transactions(
    user_id: UUID = Depends(get_current_user),
    start_date: Optional[dt.datetime] = Query(None, alias="startDate"),
    end_date: Optional[dt.datetime] = Query(None, alias="endDate"),
    type: Optional[TransactionType] = Query(None),
    include_deleted: bool = Query(False, alias="includeDeleted"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    with Session(engine) as session:
        query = query_transactions(
            user_id,
            include_deleted=include_deleted,
            tx_type=type,
            start_date=normalize_dt(start_date) if start_date else None,
            end_date=normalize_dt(end_date) if end_date else None,
        ).order_by(Transaction.date.desc(), Transaction.created_at.desc())

        total = session.exec(select(func.count()).select_from(query.subquery())).one()

        transactions = session.exec(
            query.offset((page - 1) * page_size).limit(page_size)
        ).all()

        total_pages = max(1, (total + page_size - 1) // page_size)

        return {
            "items": [
                TransactionRead.model_validate(t).model_dump(mode="json")
                for t in transactions
            ],
            "total": total,
            "page": page,
            "page_size": page_size,
            "totalPages": total_pages
        }


@router.get("/{transaction_id}", response_model=TransactionWithProfilesRead)
def get_transaction(
    transaction_id: UUID,
    user_id: UUID = Depends(get_current_user),
):
    with Session(engine) as session:
        tx = get_accessible_transaction(session, transaction_id, user_id)
        profiles = resolve_profiles(session, tx.member_ids())

        data = TransactionRead.model_validate(tx).model_dump()
        return TransactionWithProfilesRead(
            **data,
            profiles={str(k): v for k, v in profiles.items()},
        )


@router.put("/{transaction_id}", response_model=TransactionRead)
def update_transaction(
    transaction_id: UUID,
    data: TransactionUpdate,
    user_id: UUID = Depends(get_current_user),
):
    with Session(engine) as session:
        user = get_user_or_401(session, user_id)
        tx = get_accessible_transaction(session, transaction_id, user_id)
        before = tx.member_ids()
        update_ledger_transaction(session, tx, data, user)
        commit_or_raise(session)
        session.refresh(tx)
        publish_write("updated", tx, previous_members=before)
        return TransactionRead.model_validate(tx)


@router.delete("/{transaction_id}", response_model=TransactionRead)
def delete_transaction(
    transaction_id: UUID,
    user_id: UUID = Depends(get_current_user),
):
    # Siempre es un borrado lógico: se marca deleted_at y se recalculan saldos
    with Session(engine) as session:
        user = get_user_or_401(session, user_id)
        tx = get_accessible_transaction(session, transaction_id, user_id)
        delete_ledger_transaction(session, tx, user)
        commit_or_raise(session)
        session.refresh(tx)
        publish_write("deleted", tx)
        return TransactionRead.model_validate(tx)
