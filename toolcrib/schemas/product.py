"""Pydantic schemas for consumable products."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str
    code: str
    responsible: str
    quantity: int = Field(ge=0)

    model_config = {
        "json_schema_extra": {
            "example": {"name": "Cutting disc 115mm", "code": "CD-115", "responsible": "Warehouse", "quantity": 40}
        }
    }


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    responsible: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)


class ProductOut(BaseModel):
    id: int
    code: str
    name: str
    responsible: str
    quantity: int
    created_at: str
    updated_at: str

    class Config:
        from_attributes = True
