"""SQLAlchemy model for consumable stock (products that leave and do not come back)."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, Integer, Text

from ..db.session import Base


class Product(Base):
    """A consumable with a single on-hand counter.

    Unlike tools, products are not lent: a withdrawal debits ``quantity`` for
    good. Only ``crud.products`` and ``crud.withdrawals`` change the counter.
    """

    __tablename__ = "products"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_products_quantity_nonnegative"),)

    id = Column(Integer, primary_key=True, index=True)
    code = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    responsible = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)


__all__ = ["Product"]
