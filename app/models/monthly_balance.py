# app/models/monthly_balance.py

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from uuid import UUID
from typing import Optional
from datetime import datetime

class MonthlyBalance(SQLModel, table=True):
    __tablename__ = "monthly_balance"
    __table_args__ = (
        UniqueConstraint("user_id", "month_year", name="uq_monthly_balance_user_month"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)
    month_year: str = Field(index=True)  # YYYY-MM
    opening_balance: float = 0.0
    closing_balance: float = 0.0  # apertura + ingresos - gastos del mes
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
