from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class LoanCreate(BaseModel):
    ticket_number: str
    tool_id: int
    quantity: int
    responsible: str
    usage_location: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "ticket_number": "TICKET-20241018-0001",
                "tool_id": 3,
                "quantity": 2,
                "responsible": "Maria Gomez",
                "usage_location": "Workshop B",
            }
        }
    }


class LoanReturn(BaseModel):
    notes: Optional[str] = None


class LoanOut(BaseModel):
    id: int
    ticket_number: str
    tool_id: int
    tool_name: Optional[str] = None
    tool_quantity_available: Optional[int] = None
    quantity: int
    responsible: str
    usage_location: str
    status: str
    issued_by_id: int
    issued_by_name: Optional[str] = None
    created_at: str
    returned_at: Optional[str] = None
    return_notes: Optional[str] = None
    returned_by_id: Optional[int] = None
    returned_by_name: Optional[str] = None

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    total: int
    pages: int
    current_page: int
    limit: int


class LoanPage(BaseModel):
    loans: list[LoanOut] = Field(default_factory=list)
    pagination: Pagination


class TicketNumberOut(BaseModel):
    ticket_number: str
