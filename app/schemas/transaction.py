from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, TypeAdapter
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime
from app.models.enums import ActivityAction, ExpenseCategory, PaymentMode, TransactionType


class Payer(BaseModel):
    user_id: UUID
    amount_paid: FiniteFloat


class SplitParticipant(BaseModel):
    user_id: UUID
    share_amount: FiniteFloat
    share_percentage: Optional[FiniteFloat] = None


class EqualSplit(BaseModel):
    method: Literal["equally"] = "equally"
    participants: List[SplitParticipant]


class PercentageSplit(BaseModel):
    method: Literal["percentages"] = "percentages"
    participants: List[SplitParticipant]


class SettlementSplit(BaseModel):
    method: Literal["settlement"] = "settlement"
    participants: List[SplitParticipant]

    @property
    def counterparty_id(self) -> Optional[UUID]:
        return self.participants[0].user_id if self.participants else None


SplitDetails = Annotated[
    Union[EqualSplit, PercentageSplit, SettlementSplit],
    Field(discriminator="method"),
]

_payers_adapter = TypeAdapter(List[Payer])
_split_adapter = TypeAdapter(Optional[SplitDetails])


def parse_payers(raw: Optional[List[Dict[str, Any]]]) -> List[Payer]:
    return _payers_adapter.validate_python(raw or [])


def parse_split_details(raw: Optional[Dict[str, Any]]):
    return _split_adapter.validate_python(raw)


def dump_payers(payers: List[Payer]) -> List[Dict[str, Any]]:
    return [p.model_dump(mode="json") for p in payers]


def dump_split_details(split) -> Optional[Dict[str, Any]]:
    if split is None:
        return None
    return split.model_dump(mode="json", exclude_none=True)


class ActivityLogEntry(BaseModel):
    action: ActivityAction
    user_id: UUID
    user_name: str
    timestamp: datetime


class TransactionCreate(BaseModel):
    type: TransactionType
    amount: FiniteFloat
    payment_mode: PaymentMode = PaymentMode.cash
    description: str = ""
    date: Optional[datetime] = None
    category: Optional[ExpenseCategory] = None
    payers: List[Payer]
    split_details: Optional[SplitDetails] = None


class TransactionUpdate(BaseModel):
    type: Optional[TransactionType] = None
    amount: Optional[FiniteFloat] = None
    payment_mode: Optional[PaymentMode] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    category: Optional[ExpenseCategory] = None
    payers: Optional[List[Payer]] = None
    split_details: Optional[SplitDetails] = None
    clear_split_details: bool = False  # pasar a personal/ingreso sin reparto


class TransactionRead(BaseModel):
    id: UUID
    creator_id: UUID
    type: TransactionType
    amount: float
    payment_mode: PaymentMode
    description: str
    date: datetime
    category: Optional[ExpenseCategory] = None
    payers: List[Payer]
    split_details: Optional[SplitDetails] = None
    activity_log: List[ActivityLogEntry] = []
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileRead(BaseModel):
    id: UUID
    email: str
    display_name: str


class TransactionWithProfilesRead(TransactionRead):
    profiles: Dict[str, ProfileRead] = {}


class SettlementCreate(BaseModel):
    direction: Literal["paid", "received"]
    amount: FiniteFloat
    counterparty_email: Optional[str] = None
    counterparty_id: Optional[UUID] = None
    payment_mode: PaymentMode = PaymentMode.cash
    date: Optional[datetime] = None
