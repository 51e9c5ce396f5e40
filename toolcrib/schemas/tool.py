"""Pydantic schemas describing tool payloads for the API."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ToolCreate(BaseModel):
    name: str
    responsible: str
    quantity_total: int = Field(ge=0)
    quantity_on_loan: int = Field(default=0, ge=0)
    code: Optional[str] = None
    status: Optional[str] = None

    @model_validator(mode="after")
    def validate_counts(self) -> "ToolCreate":
        if self.quantity_on_loan > self.quantity_total:
            raise ValueError("quantity_on_loan cannot exceed quantity_total")
        return self


class ToolUpdate(BaseModel):
    name: Optional[str] = None
    responsible: Optional[str] = None
    quantity_total: Optional[int] = Field(default=None, ge=0)
    code: Optional[str] = None
    status: Optional[str] = None


class ToolOut(BaseModel):
    id: int
    code: Optional[str] = None
    name: str
    responsible: str
    quantity_total: int
    quantity_available: int
    quantity_on_loan: int
    status: str
    created_at: str
    updated_at: str

    class Config:
        from_attributes = True
