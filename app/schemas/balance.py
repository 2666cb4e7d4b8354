from pydantic import BaseModel, ConfigDict
from uuid import UUID
from typing import List, Optional
from datetime import datetime

class FriendBalanceRead(BaseModel):
    friend_id: UUID
    friend_name: Optional[str] = None
    friend_email: Optional[str] = None
    balance: float  # positivo: el amigo te debe; negativo: tú le debes

class BalanceDetail(BaseModel):
    transaction_id: UUID
    description: str
    amount: float
    date: datetime

class MonthlyBalanceRead(BaseModel):
    month_year: str
    opening_balance: float
    closing_balance: float

    model_config = ConfigDict(from_attributes=True)

class FriendBalanceBreakdownRead(FriendBalanceRead):
    details: List[BalanceDetail] = []
