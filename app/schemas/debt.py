# app/schemas/debt.py

from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime

class DebtRead(BaseModel):
    id: int
    transaction_id: UUID
    debtor_id: UUID
    creditor_id: UUID
    amount: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
