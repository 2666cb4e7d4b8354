# app/models/connection.py

from enum import Enum
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from uuid import UUID
from typing import Optional
from datetime import datetime

class ConnectionStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    blocked = "blocked"

class UserConnection(SQLModel, table=True):
    __tablename__ = "user_connection"
    __table_args__ = (
        UniqueConstraint("user_id_1", "user_id_2", name="uq_user_connection_pair"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id_1: UUID = Field(foreign_key="user.id", index=True)
    user_id_2: UUID = Field(foreign_key="user.id", index=True)
    status: ConnectionStatus = Field(default=ConnectionStatus.pending)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
