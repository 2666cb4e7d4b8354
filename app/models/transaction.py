from uuid import UUID, uuid4
from sqlalchemy import Column, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from app.models.enums import ExpenseCategory, PaymentMode, TransactionType

SETTLEMENT_TAG = "SETTLEMENT:"


class Transaction(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    creator_id: UUID = Field(foreign_key="user.id", index=True)
    type: TransactionType
    amount: float
    payment_mode: PaymentMode = Field(default=PaymentMode.cash)
    description: str = ""
    date: datetime = Field(default_factory=datetime.utcnow, index=True)
    category: Optional[ExpenseCategory] = None

    # Estructuras JSON: siempre se reasigna la lista completa para que
    # SQLAlchemy detecte el cambio
    payers: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    split_details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    activity_log: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    deleted_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_settlement(self) -> bool:
        return bool(self.split_details) and self.split_details.get("method") == "settlement"

    def member_ids(self) -> set:
        """Creador, pagadores y participantes del reparto."""
        ids = {self.creator_id}
        ids.update(UUID(str(p["user_id"])) for p in self.payers or [])
        if self.split_details:
            ids.update(UUID(str(p["user_id"])) for p in self.split_details.get("participants") or [])
        return ids


class TransactionMember(SQLModel, table=True):
    __tablename__ = "transaction_member"
    __table_args__ = (
        UniqueConstraint("transaction_id", "user_id", name="uq_transaction_member"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: UUID = Field(foreign_key="transaction.id", index=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)
