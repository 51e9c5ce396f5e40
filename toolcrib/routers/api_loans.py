"""Beginner-friendly overview for this module.

WHAT: HTTP routes for the loan workflow (checkout, return, listing, tickets).
WHEN: Mounted by ``toolcrib.create_app`` under ``/api/v1/loans``.
WHY: Keeps request parsing apart from the transactional logic in ``crud.loans``.
HOW: Each handler resolves the caller through the access guard, then delegates.

File: toolcrib/routers/api_loans.py
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.constants import normalize_loan_status
from ..core.errors import LoanNotFound, ValidationFailed
from ..crud.loans import DEFAULT_PAGE_SIZE, create_loan, get_loan, list_loans, return_loan
from ..db.session import get_db
from ..deps.auth import Identity, authenticate, require_admin
from ..schemas.loan import LoanCreate, LoanOut, LoanPage, LoanReturn, TicketNumberOut
from ..services.tickets import generate_ticket_number

router = APIRouter(prefix="/api/v1/loans", tags=["loans"])


@router.post("", response_model=LoanOut, status_code=201)
def api_create(payload: LoanCreate, db: Session = Depends(get_db), identity: Identity = Depends(require_admin)):
    return create_loan(db, payload.model_dump(), issuer_id=identity.user_id)


@router.get("", response_model=LoanPage, dependencies=[Depends(authenticate)])
def api_list(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1),
    search: str | None = None,
    estado: str | None = Query(default=None, description="Loan status filter: Active or Returned"),
    db: Session = Depends(get_db),
):
    status = None
    if estado:
        status = normalize_loan_status(estado)
        if status is None:
            raise ValidationFailed("Unknown loan status", details={"estado": estado})
    return list_loans(db, page=page, limit=limit, search=search, status=status)


# Declared before "/{loan_id}" so the literal path wins.
@router.get("/generate-ticket", response_model=TicketNumberOut, dependencies=[Depends(authenticate)])
def api_generate_ticket(db: Session = Depends(get_db)):
    return TicketNumberOut(ticket_number=generate_ticket_number(db))


@router.get("/{loan_id}", response_model=LoanOut, dependencies=[Depends(authenticate)])
def api_get(loan_id: int, db: Session = Depends(get_db)):
    loan = get_loan(db, loan_id)
    if not loan:
        raise LoanNotFound()
    return loan


@router.put("/{loan_id}/return", response_model=LoanOut)
def api_return(
    loan_id: int,
    payload: LoanReturn | None = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
):
    notes = payload.notes if payload else None
    return return_loan(db, loan_id, returner_id=identity.user_id, notes=notes)
