from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.errors import ProductNotFound, WithdrawalNotFound
from ..crud.products import get_product
from ..crud.withdrawals import create_withdrawal, get_withdrawal, list_withdrawals, withdrawal_statistics
from ..db.session import get_db
from ..deps.auth import Identity, authenticate
from ..schemas.report import InventorySummary
from ..schemas.withdrawal import ProductWithdrawalStats, WithdrawalCreate, WithdrawalOut
from ..services.reporting import summarize

router = APIRouter(prefix="/api/v1/reports", tags=["reports"], dependencies=[Depends(authenticate)])


@router.get("/summary", response_model=InventorySummary)
def api_summary(db: Session = Depends(get_db)):
    return summarize(db)


# Any signed-in user may record consumption; stock checks live in crud.withdrawals.
@router.post("/withdrawals", response_model=WithdrawalOut, status_code=201)
def api_create_withdrawal(
    payload: WithdrawalCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(authenticate),
):
    return create_withdrawal(db, payload.model_dump(), recorded_by_id=identity.user_id)


@router.get("/withdrawals", response_model=list[WithdrawalOut])
def api_list_withdrawals(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return list_withdrawals(db, limit=limit, offset=offset)


@router.get("/withdrawals/product/{product_id}", response_model=list[WithdrawalOut])
def api_product_withdrawals(product_id: int, db: Session = Depends(get_db)):
    if get_product(db, product_id) is None:
        raise ProductNotFound()
    return list_withdrawals(db, product_id=product_id, limit=500)


@router.get("/withdrawals/{withdrawal_id}", response_model=WithdrawalOut)
def api_get_withdrawal(withdrawal_id: int, db: Session = Depends(get_db)):
    withdrawal = get_withdrawal(db, withdrawal_id)
    if withdrawal is None:
        raise WithdrawalNotFound()
    return withdrawal


@router.get("/statistics", response_model=list[ProductWithdrawalStats])
def api_statistics(db: Session = Depends(get_db)):
    return withdrawal_statistics(db)
