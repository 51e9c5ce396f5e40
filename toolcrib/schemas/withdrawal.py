from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class WithdrawalCreate(BaseModel):
    product_id: int
    quantity: int
    responsible: str
    reason: str

    model_config = {
        "json_schema_extra": {
            "example": {"product_id": 2, "quantity": 5, "responsible": "Maria Gomez", "reason": "Facade repair"}
        }
    }


class WithdrawalOut(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    product_quantity: Optional[int] = None
    quantity: int
    responsible: str
    reason: str
    recorded_by_id: int
    recorded_by_name: Optional[str] = None
    created_at: str

    class Config:
        from_attributes = True


class ProductWithdrawalStats(BaseModel):
    product_id: int
    name: str
    quantity: int
    withdrawal_count: int
    units_withdrawn: int
