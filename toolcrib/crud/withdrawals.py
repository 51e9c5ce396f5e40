"""Stock withdrawals: consumables leaving the crib for good.

Recording a withdrawal inserts the row and debits the product in one
transaction. Nothing is ever credited back; a correction is a product
quantity update.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.errors import ValidationFailed
from ..models.product import Product
from ..models.withdrawal import Withdrawal
from . import products as stock

logger = logging.getLogger("toolcrib.withdrawals")


def _utcnow() -> str:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def _clean(value: object) -> str:
    return str(value or "").strip()


def _validate_new_withdrawal(payload: dict) -> dict:
    product_id = payload.get("product_id")
    quantity = payload.get("quantity")
    responsible = _clean(payload.get("responsible"))
    reason = _clean(payload.get("reason"))
    missing = [
        field
        for field, value in (
            ("product_id", product_id),
            ("quantity", quantity),
            ("responsible", responsible),
            ("reason", reason),
        )
        if value is None or value == ""
    ]
    if missing:
        raise ValidationFailed("All fields are required", details={"missing": missing})
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationFailed("product_id must be an integer")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationFailed("quantity must be greater than 0")
    return {"product_id": product_id, "quantity": quantity, "responsible": responsible, "reason": reason}


def create_withdrawal(db: Session, payload: dict, *, recorded_by_id: int) -> Withdrawal:
    data = _validate_new_withdrawal(payload)
    try:
        stock.debit(db, data["product_id"], data["quantity"])
        withdrawal = Withdrawal(**data, recorded_by_id=recorded_by_id, created_at=_utcnow())
        db.add(withdrawal)
        db.flush()
        db.commit()
    except Exception:
        db.rollback()
        raise

    withdrawal = get_withdrawal(db, withdrawal.id)
    logger.info(
        "withdrawal.created",
        extra={
            "extra_data": {
                "withdrawal_id": withdrawal.id,
                "product_id": withdrawal.product_id,
                "quantity": withdrawal.quantity,
            }
        },
    )
    return withdrawal


def get_withdrawal(db: Session, withdrawal_id: int) -> Withdrawal | None:
    stmt = select(Withdrawal).where(Withdrawal.id == withdrawal_id).execution_options(populate_existing=True)
    return db.execute(stmt).unique().scalars().first()


def list_withdrawals(
    db: Session,
    *,
    product_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Withdrawal]:
    stmt = select(Withdrawal)
    if product_id is not None:
        stmt = stmt.where(Withdrawal.product_id == product_id)
    stmt = stmt.order_by(desc(Withdrawal.created_at), desc(Withdrawal.id)).limit(limit).offset(offset)
    return db.execute(stmt).unique().scalars().all()


def withdrawal_statistics(db: Session) -> list[dict[str, object]]:
    """Every product with its withdrawal count and units withdrawn, heaviest first."""

    stmt = (
        select(
            Product.id,
            Product.name,
            Product.quantity,
            func.count(Withdrawal.id).label("withdrawal_count"),
            func.coalesce(func.sum(Withdrawal.quantity), 0).label("units_withdrawn"),
        )
        .outerjoin(Withdrawal, Withdrawal.product_id == Product.id)
        .group_by(Product.id, Product.name, Product.quantity)
        .order_by(desc("units_withdrawn"), Product.name)
    )
    return [
        {
            "product_id": row.id,
            "name": row.name,
            "quantity": int(row.quantity or 0),
            "withdrawal_count": int(row.withdrawal_count or 0),
            "units_withdrawn": int(row.units_withdrawn or 0),
        }
        for row in db.execute(stmt).all()
    ]
