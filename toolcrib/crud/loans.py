"""Loan workflow: checkout and return with their stock movements.

A loan is ``Active`` from the moment it is inserted and becomes ``Returned``
exactly once. Both transitions run as one transaction together with the
matching inventory movement, so either the loan row and the tool counters
change together or neither does.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timezone

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.constants import LOAN_STATUS_ACTIVE, LOAN_STATUS_RETURNED
from ..core.errors import AlreadyReturned, DuplicateTicket, LoanNotFound, ValidationFailed
from ..models.loan import Loan
from ..models.tool import Tool
from ..services.tickets import is_valid_ticket_number
from . import tools as ledger
from .search import matches_any

logger = logging.getLogger("toolcrib.loans")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _utcnow() -> str:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def _clean(value: object) -> str:
    return str(value or "").strip()


def ticket_exists(db: Session, ticket_number: str) -> bool:
    return db.execute(select(Loan.id).where(Loan.ticket_number == ticket_number)).first() is not None


def _validate_new_loan(payload: dict) -> dict:
    ticket_number = _clean(payload.get("ticket_number"))
    if not ticket_number:
        raise ValidationFailed("ticket_number is required")
    tool_id = payload.get("tool_id")
    if not tool_id:
        raise ValidationFailed("tool_id is required")
    quantity = payload.get("quantity")
    if quantity is None:
        raise ValidationFailed("quantity is required")
    responsible = _clean(payload.get("responsible"))
    if not responsible:
        raise ValidationFailed("responsible is required")
    usage_location = _clean(payload.get("usage_location"))
    if not usage_location:
        raise ValidationFailed("usage_location is required")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationFailed("quantity must be greater than 0")
    if isinstance(tool_id, bool) or not isinstance(tool_id, int):
        raise ValidationFailed("tool_id must be an integer")
    if not is_valid_ticket_number(ticket_number):
        raise ValidationFailed("Invalid ticket format", details={"expected": "TICKET-YYYYMMDD-NNNN"})
    return {
        "ticket_number": ticket_number,
        "tool_id": tool_id,
        "quantity": quantity,
        "responsible": responsible,
        "usage_location": usage_location,
    }


def create_loan(db: Session, payload: dict, *, issuer_id: int) -> Loan:
    """Check out stock and record the loan in a single transaction.

    Field validation happens before anything touches the database. After
    that, any failure (duplicate ticket, unknown tool, insufficient stock,
    unique-index race on insert) rolls the whole transaction back.
    """

    data = _validate_new_loan(payload)
    try:
        if ticket_exists(db, data["ticket_number"]):
            raise DuplicateTicket()
        ledger.reserve(db, data["tool_id"], data["quantity"])
        loan = Loan(
            ticket_number=data["ticket_number"],
            tool_id=data["tool_id"],
            quantity=data["quantity"],
            responsible=data["responsible"],
            usage_location=data["usage_location"],
            issued_by_id=issuer_id,
            status=LOAN_STATUS_ACTIVE,
            created_at=_utcnow(),
        )
        db.add(loan)
        db.flush()
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if ticket_exists(db, data["ticket_number"]):
            # Another request inserted the same ticket after our check.
            raise DuplicateTicket() from exc
        raise
    except Exception:
        db.rollback()
        raise

    loan = get_loan(db, loan.id)
    logger.info(
        "loan.created",
        extra={
            "extra_data": {
                "loan_id": loan.id,
                "ticket_number": loan.ticket_number,
                "tool_id": loan.tool_id,
                "quantity": loan.quantity,
            }
        },
    )
    return loan


def return_loan(db: Session, loan_id: int, *, returner_id: int, notes: str | None = None) -> Loan:
    """Mark an active loan as returned and put its units back in stock."""

    try:
        loan = db.execute(
            select(Loan)
            .where(Loan.id == loan_id)
            .execution_options(populate_existing=True)
        ).scalars().first()
        if loan is None:
            raise LoanNotFound()
        if loan.status == LOAN_STATUS_RETURNED:
            raise AlreadyReturned()

        # Guarded on status so only one of two racing returns can win.
        result = db.execute(
            update(Loan)
            .where(Loan.id == loan_id, Loan.status == LOAN_STATUS_ACTIVE)
            .values(
                status=LOAN_STATUS_RETURNED,
                returned_at=_utcnow(),
                return_notes=_clean(notes) or None,
                returned_by_id=returner_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyReturned()
        ledger.release(db, loan.tool_id, loan.quantity)
        db.commit()
    except Exception:
        db.rollback()
        raise

    loan = get_loan(db, loan_id)
    logger.info(
        "loan.returned",
        extra={"extra_data": {"loan_id": loan.id, "tool_id": loan.tool_id, "quantity": loan.quantity}},
    )
    return loan


def get_loan(db: Session, loan_id: int) -> Loan | None:
    stmt = select(Loan).where(Loan.id == loan_id).execution_options(populate_existing=True)
    return db.execute(stmt).unique().scalars().first()


def list_loans(
    db: Session,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    search: str | None = None,
    status: str | None = None,
) -> dict[str, object]:
    """Return one page of loans, newest first, plus pagination metadata."""

    page = max(page or 1, 1)
    limit = min(max(limit or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)

    filters = []
    match = matches_any(search, Loan.ticket_number, Tool.name, Loan.responsible)
    if match is not None:
        filters.append(match)
    if status:
        filters.append(Loan.status == status)

    total = db.execute(
        select(func.count(Loan.id)).select_from(Loan).join(Tool, Tool.id == Loan.tool_id).where(*filters)
    ).scalar_one()

    stmt = (
        select(Loan)
        .join(Tool, Tool.id == Loan.tool_id)
        .where(*filters)
        .order_by(desc(Loan.created_at), desc(Loan.id))
        .limit(limit)
        .offset((page - 1) * limit)
    )
    items = db.execute(stmt).unique().scalars().all()
    return {
        "loans": items,
        "pagination": {
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
            "current_page": page,
            "limit": limit,
        },
    }


def count_loans_by_status(db: Session) -> dict[str, int]:
    rows = db.execute(select(Loan.status, func.count(Loan.id)).group_by(Loan.status)).all()
    counts = {LOAN_STATUS_ACTIVE: 0, LOAN_STATUS_RETURNED: 0}
    for status, count in rows:
        counts[status] = int(count or 0)
    return counts


def loans_on_day(db: Session, day: date) -> int:
    prefix = f"{day:%Y-%m-%d}T"
    return db.execute(select(func.count(Loan.id)).where(Loan.created_at.like(f"{prefix}%"))).scalar_one()
