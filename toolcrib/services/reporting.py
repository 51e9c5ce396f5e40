from __future__ import annotations

from datetime import date
from typing import Any, Dict

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.constants import LOAN_STATUS_ACTIVE, LOAN_STATUS_RETURNED
from ..crud.loans import count_loans_by_status, loans_on_day
from ..crud.tools import inventory_totals
from ..models.loan import Loan
from ..models.tool import Tool
from .tickets import utc_today

TOP_TOOLS_LIMIT = 5


def most_loaned_tools(db: Session, limit: int = TOP_TOOLS_LIMIT) -> list[dict[str, Any]]:
    """Tools ranked by how many loans were ever issued against them."""

    stmt = (
        select(
            Tool.id,
            Tool.name,
            func.count(Loan.id).label("loan_count"),
            func.coalesce(func.sum(Loan.quantity), 0).label("units_loaned"),
        )
        .join(Loan, Loan.tool_id == Tool.id)
        .group_by(Tool.id, Tool.name)
        .order_by(desc("loan_count"), Tool.name)
        .limit(limit)
    )
    return [
        {
            "tool_id": row.id,
            "name": row.name,
            "loan_count": int(row.loan_count or 0),
            "units_loaned": int(row.units_loaned or 0),
        }
        for row in db.execute(stmt).all()
    ]


def summarize(db: Session, today: date | None = None) -> Dict[str, Any]:
    """Read-only snapshot of inventory and loan activity for dashboards."""

    statuses = count_loans_by_status(db)
    totals = inventory_totals(db)
    return {
        **totals,
        "loans_active": statuses.get(LOAN_STATUS_ACTIVE, 0),
        "loans_returned": statuses.get(LOAN_STATUS_RETURNED, 0),
        "loans_today": loans_on_day(db, today or utc_today()),
        "top_tools": most_loaned_tools(db),
    }
