from __future__ import annotations

from pydantic import BaseModel, Field


class TopTool(BaseModel):
    tool_id: int
    name: str
    loan_count: int
    units_loaned: int


class InventorySummary(BaseModel):
    tools: int
    units_total: int
    units_available: int
    units_on_loan: int
    loans_active: int
    loans_returned: int
    loans_today: int
    top_tools: list[TopTool] = Field(default_factory=list)
