"""Inventory ledger: tool records and their stock counters.

``reserve`` and ``release`` run inside the caller's transaction and never
commit; the loan workflow in ``crud.loans`` owns the transaction boundary.
Every counter change is a single guarded UPDATE so the conservation
invariant holds even when two transactions race on the same row.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.constants import TOOL_STATUS_DEFAULT
from ..core.errors import (
    DuplicateCode,
    HasOutstandingLoans,
    InsufficientStock,
    LedgerInconsistency,
    ReferencedRecord,
    ToolNotFound,
    ValidationFailed,
)
from ..models.loan import Loan
from ..models.tool import Tool
from .search import matches_any

logger = logging.getLogger("toolcrib.inventory")


def _utcnow() -> str:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def _clean(value: object) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _as_count(value: object, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailed(f"{field} must be an integer")
    if value < 0:
        raise ValidationFailed(f"{field} must not be negative")
    return value


def _code_taken(db: Session, code: str, exclude_tool_id: int | None = None) -> bool:
    stmt = select(Tool.id).where(Tool.code == code)
    if exclude_tool_id is not None:
        stmt = stmt.where(Tool.id != exclude_tool_id)
    return db.execute(stmt).first() is not None


def list_tools(db: Session, search: str | None = None, limit: int = 100, offset: int = 0) -> list[Tool]:
    stmt = select(Tool)
    match = matches_any(search, Tool.name, Tool.responsible, Tool.code)
    if match is not None:
        stmt = stmt.where(match)
    stmt = stmt.order_by(desc(Tool.created_at), desc(Tool.id)).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_tool(db: Session, tool_id: int) -> Tool | None:
    return db.get(Tool, tool_id)


def create_tool(db: Session, payload: dict) -> Tool:
    """Create a tool; ``available`` is always derived as ``total - on_loan``."""

    name = _clean(payload.get("name"))
    if not name:
        raise ValidationFailed("name is required")
    responsible = _clean(payload.get("responsible"))
    if not responsible:
        raise ValidationFailed("responsible is required")
    total = _as_count(payload.get("quantity_total"), "quantity_total")
    on_loan = _as_count(payload.get("quantity_on_loan") or 0, "quantity_on_loan")
    if on_loan > total:
        raise ValidationFailed("quantity_on_loan cannot exceed quantity_total")

    code = _clean(payload.get("code"))
    if code and _code_taken(db, code):
        raise DuplicateCode()

    now = _utcnow()
    tool = Tool(
        code=code,
        responsible=responsible,
        name=name,
        quantity_total=total,
        quantity_available=total - on_loan,
        quantity_on_loan=on_loan,
        status=_clean(payload.get("status")) or TOOL_STATUS_DEFAULT,
        created_at=now,
        updated_at=now,
    )
    db.add(tool)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateCode() from exc
    db.refresh(tool)
    logger.info("tool.created", extra={"extra_data": {"tool_id": tool.id, "quantity_total": total}})
    return tool


def update_tool(db: Session, tool: Tool, payload: dict) -> Tool:
    """Edit descriptive fields and, optionally, the total stock.

    A new total must still cover the units currently out on loan; the
    available count is re-derived from it. The counter change is guarded on
    the on-loan value read here so a concurrent checkout cannot slip between.
    """

    values: dict[str, object] = {}
    for field in ("name", "responsible"):
        if field in payload:
            cleaned = _clean(payload.get(field))
            if not cleaned:
                raise ValidationFailed(f"{field} is required")
            values[field] = cleaned
    if "status" in payload:
        values["status"] = _clean(payload.get("status")) or TOOL_STATUS_DEFAULT
    if "code" in payload:
        code = _clean(payload.get("code"))
        if code and _code_taken(db, code, exclude_tool_id=tool.id):
            raise DuplicateCode()
        values["code"] = code

    stmt = update(Tool).where(Tool.id == tool.id)
    if payload.get("quantity_total") is not None:
        total = _as_count(payload.get("quantity_total"), "quantity_total")
        on_loan = tool.quantity_on_loan
        if total < on_loan:
            raise ValidationFailed(
                "quantity_total cannot be lower than the units on loan",
                details={"quantity_on_loan": on_loan},
            )
        values["quantity_total"] = total
        values["quantity_available"] = total - on_loan
        stmt = stmt.where(Tool.quantity_on_loan == on_loan)

    if not values:
        return tool
    values["updated_at"] = _utcnow()
    try:
        result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        if result.rowcount != 1:
            # The on-loan count moved after we read it.
            raise ValidationFailed("Tool stock changed concurrently, retry the update")
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateCode() from exc
    except ValidationFailed:
        db.rollback()
        raise
    db.refresh(tool)
    return tool


def delete_tool(db: Session, tool: Tool) -> None:
    if tool.quantity_on_loan > 0:
        raise HasOutstandingLoans(details={"quantity_on_loan": tool.quantity_on_loan})
    has_history = db.execute(select(Loan.id).where(Loan.tool_id == tool.id).limit(1)).first()
    if has_history:
        raise ReferencedRecord("Tool is referenced by loan history and cannot be deleted")
    tool_id = tool.id
    db.delete(tool)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ReferencedRecord("Tool is referenced by loan history and cannot be deleted") from exc
    logger.info("tool.deleted", extra={"extra_data": {"tool_id": tool_id}})


def _lock_tool(db: Session, tool_id: int) -> Tool | None:
    # Re-read inside the transaction, overwriting any stale copy in the session.
    stmt = (
        select(Tool)
        .where(Tool.id == tool_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalars().first()


def reserve(db: Session, tool_id: int, quantity: int) -> Tool:
    """Move ``quantity`` units from available to on-loan. Does not commit."""

    tool = _lock_tool(db, tool_id)
    if tool is None:
        raise ToolNotFound()
    if quantity > tool.quantity_available:
        logger.warning(
            "inventory.reserve_rejected",
            extra={"extra_data": {"tool_id": tool_id, "requested": quantity, "available": tool.quantity_available}},
        )
        raise InsufficientStock(
            f"Insufficient stock. Available: {tool.quantity_available}",
            details={"available": tool.quantity_available, "requested": quantity},
        )
    result = db.execute(
        update(Tool)
        .where(Tool.id == tool_id, Tool.quantity_available >= quantity)
        .values(
            quantity_available=Tool.quantity_available - quantity,
            quantity_on_loan=Tool.quantity_on_loan + quantity,
            updated_at=_utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Another transaction took the stock between our read and write.
        raise InsufficientStock(details={"requested": quantity})
    db.refresh(tool)
    return tool


def release(db: Session, tool_id: int, quantity: int) -> Tool:
    """Move ``quantity`` units from on-loan back to available. Does not commit."""

    result = db.execute(
        update(Tool)
        .where(Tool.id == tool_id, Tool.quantity_on_loan >= quantity)
        .values(
            quantity_available=Tool.quantity_available + quantity,
            quantity_on_loan=Tool.quantity_on_loan - quantity,
            updated_at=_utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise LedgerInconsistency(details={"tool_id": tool_id, "quantity": quantity})
    tool = db.get(Tool, tool_id, populate_existing=True)
    return tool


def inventory_totals(db: Session) -> dict[str, int]:
    row = db.execute(
        select(
            func.count(Tool.id),
            func.coalesce(func.sum(Tool.quantity_total), 0),
            func.coalesce(func.sum(Tool.quantity_available), 0),
            func.coalesce(func.sum(Tool.quantity_on_loan), 0),
        )
    ).one()
    return {
        "tools": int(row[0] or 0),
        "units_total": int(row[1] or 0),
        "units_available": int(row[2] or 0),
        "units_on_loan": int(row[3] or 0),
    }
