from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class UserBase(BaseModel):
    document_number: str
    full_name: str
    email: str
    role: str


class UserCreate(UserBase):
    password: str = Field(..., min_length=1)


class UserUpdate(BaseModel):
    document_number: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    password: Optional[str] = None


class UserOut(UserBase):
    id: int
    created_at: str

    class Config:
        from_attributes = True
