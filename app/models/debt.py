# app/models/debt.py

from sqlmodel import SQLModel, Field
from uuid import UUID
from typing import Optional
from datetime import datetime

class Debt(SQLModel, table=True):
    """Arista de deuda derivada de una transacción; nunca se escribe a mano."""

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: UUID = Field(foreign_key="transaction.id", index=True)
    debtor_id: UUID = Field(foreign_key="user.id", index=True)
    creditor_id: UUID = Field(foreign_key="user.id", index=True)
    amount: float
    created_at: datetime = Field(default_factory=datetime.utcnow)
