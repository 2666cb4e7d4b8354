from pydantic import BaseModel, EmailStr
from uuid import UUID
from typing import Optional

class UserCreate(BaseModel):
    email: EmailStr
    password: str
    display_name: Optional[str] = None

class UserRead(BaseModel):
    id: UUID
    email: EmailStr
    display_name: Optional[str] = None
