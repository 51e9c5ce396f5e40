"""Consumable stock: product records and their single on-hand counter.

``debit`` is the only way stock leaves. It runs inside the caller's
transaction, never commits, and guards the UPDATE on the quantity so two
withdrawals racing for the last units cannot both succeed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import (
    DuplicateCode,
    InsufficientStock,
    ProductNotFound,
    ReferencedRecord,
    ValidationFailed,
)
from ..models.product import Product
from ..models.withdrawal import Withdrawal
from .search import matches_any

logger = logging.getLogger("toolcrib.products")

REQUIRED_FIELDS = ("name", "code", "responsible")


def _utcnow() -> str:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def _clean(value: object) -> str:
    return str(value or "").strip()


def _as_quantity(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationFailed("quantity must be an integer")
    if value < 0:
        raise ValidationFailed("quantity must not be negative")
    return value


def _code_taken(db: Session, code: str, exclude_product_id: int | None = None) -> bool:
    stmt = select(Product.id).where(Product.code == code)
    if exclude_product_id is not None:
        stmt = stmt.where(Product.id != exclude_product_id)
    return db.execute(stmt).first() is not None


def list_products(db: Session, search: str | None = None, limit: int = 100, offset: int = 0) -> list[Product]:
    stmt = select(Product)
    match = matches_any(search, Product.name, Product.code, Product.responsible)
    if match is not None:
        stmt = stmt.where(match)
    stmt = stmt.order_by(Product.name, Product.id).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_product(db: Session, product_id: int) -> Product | None:
    return db.get(Product, product_id)


def create_product(db: Session, payload: dict) -> Product:
    data = {field: _clean(payload.get(field)) for field in REQUIRED_FIELDS}
    missing = [field for field, value in data.items() if not value]
    if payload.get("quantity") is None:
        missing.append("quantity")
    if missing:
        raise ValidationFailed("All fields are required", details={"missing": missing})
    quantity = _as_quantity(payload.get("quantity"))
    if _code_taken(db, data["code"]):
        raise DuplicateCode("Product code already exists")

    now = _utcnow()
    product = Product(**data, quantity=quantity, created_at=now, updated_at=now)
    db.add(product)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateCode("Product code already exists") from exc
    db.refresh(product)
    logger.info("product.created", extra={"extra_data": {"product_id": product.id, "quantity": quantity}})
    return product


def update_product(db: Session, product: Product, payload: dict) -> Product:
    """Edit a product. A new ``quantity`` is a stock count correction."""

    values = {field: _clean(payload.get(field)) for field in REQUIRED_FIELDS if field in payload}
    missing = [field for field, value in values.items() if not value]
    if missing:
        raise ValidationFailed("All fields are required", details={"missing": missing})
    if payload.get("quantity") is not None:
        values["quantity"] = _as_quantity(payload.get("quantity"))
    if "code" in values and _code_taken(db, values["code"], exclude_product_id=product.id):
        raise DuplicateCode("Product code already exists")

    for field, value in values.items():
        setattr(product, field, value)
    product.updated_at = _utcnow()
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateCode("Product code already exists") from exc
    db.refresh(product)
    return product


def delete_product(db: Session, product: Product) -> None:
    has_history = db.execute(select(Withdrawal.id).where(Withdrawal.product_id == product.id).limit(1)).first()
    if has_history:
        raise ReferencedRecord("Product is referenced by withdrawal history and cannot be deleted")
    product_id = product.id
    db.delete(product)
    db.commit()
    logger.info("product.deleted", extra={"extra_data": {"product_id": product_id}})


def _lock_product(db: Session, product_id: int) -> Product | None:
    stmt = (
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalars().first()


def debit(db: Session, product_id: int, quantity: int) -> Product:
    """Remove ``quantity`` units from stock. Does not commit."""

    product = _lock_product(db, product_id)
    if product is None:
        raise ProductNotFound()
    if quantity > product.quantity:
        logger.warning(
            "inventory.withdrawal_rejected",
            extra={"extra_data": {"product_id": product_id, "requested": quantity, "available": product.quantity}},
        )
        raise InsufficientStock(
            f"Insufficient stock. Available: {product.quantity}",
            details={"available": product.quantity, "requested": quantity},
        )
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity >= quantity)
        .values(quantity=Product.quantity - quantity, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientStock(details={"requested": quantity})
    db.refresh(product)
    return product

