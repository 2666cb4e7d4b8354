import re
from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select
from uuid import UUID
from typing import List

from app.database import engine
from app.core.security import get_current_user
from app.models.monthly_balance import MonthlyBalance
from app.realtime.change_feed import MONTHLY_BALANCES, change_feed
from app.schemas.balance import FriendBalanceBreakdownRead, FriendBalanceRead, MonthlyBalanceRead
from app.utils.balance_helpers import balance_breakdown, friend_balances, recarry_forward
from app.utils.ledger_helpers import commit_or_raise
from app.utils.user_helpers import resolve_profiles

router = APIRouter(prefix="/balances", tags=["balances"])

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@router.get("/friends", response_model=List[FriendBalanceRead])
def get_friend_balances(user_id: UUID = Depends(get_current_user)):
    with Session(engine) as session:
        return friend_balances(session, user_id)


@router.get("/friends/{friend_id}", response_model=FriendBalanceBreakdownRead)
def get_friend_balance(friend_id: UUID, user_id: UUID = Depends(get_current_user)):
    with Session(engine) as session:
        profile = resolve_profiles(session, [friend_id]).get(friend_id)
        if not profile:
            raise HTTPException(status_code=404, detail="Usuario no encontrado")

        details = balance_breakdown(session, user_id, friend_id)
        total = round(sum(d.amount for d in details), 2) + 0.0
        return FriendBalanceBreakdownRead(
            friend_id=friend_id,
            friend_name=profile.display_name,
            friend_email=profile.email,
            balance=total,
            details=details,
        )


@router.get("/monthly", response_model=List[MonthlyBalanceRead])
def get_monthly_balances(user_id: UUID = Depends(get_current_user)):
    with Session(engine) as session:
        rows = session.exec(
            select(MonthlyBalance)
            .where(MonthlyBalance.user_id == user_id)
            .order_by(MonthlyBalance.month_year)
        ).all()
        return [MonthlyBalanceRead.model_validate(r) for r in rows]


@router.get("/monthly/{month_year}", response_model=MonthlyBalanceRead)
def get_monthly_balance(month_year: str, user_id: UUID = Depends(get_current_user)):
    if not _MONTH_RE.match(month_year):
        raise HTTPException(status_code=400, detail="El mes debe tener el formato YYYY-MM")

    with Session(engine) as session:
        row = session.exec(
            select(MonthlyBalance).where(
                MonthlyBalance.user_id == user_id,
                MonthlyBalance.month_year == month_year,
            )
        ).first()
        if not row:
            raise HTTPException(status_code=404, detail="No hay saldo registrado para ese mes")
        return MonthlyBalanceRead.model_validate(row)


@router.post("/monthly/recompute", response_model=List[MonthlyBalanceRead])
def recompute_monthly_balances(user_id: UUID = Depends(get_current_user)):
    """Recalcula todo el historial mensual del usuario; es idempotente."""
    with Session(engine) as session:
        rows = recarry_forward(session, user_id)
        commit_or_raise(session)
        result = [MonthlyBalanceRead.model_validate(r) for r in rows]
        change_feed.publish(MONTHLY_BALANCES, "updated", str(user_id), audience=[user_id])
        return result
