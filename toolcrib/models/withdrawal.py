from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from .product import Product


class Withdrawal(Base):
    """A permanent removal of ``quantity`` units of one product."""

    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    responsible = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    recorded_by_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(Text, nullable=False, index=True)

    product = relationship(Product, lazy="joined")
    recorded_by = relationship("User", lazy="joined")

    @property
    def product_name(self) -> str | None:
        return self.product.name if self.product else None

    @property
    def product_quantity(self) -> int | None:
        return self.product.quantity if self.product else None

    @property
    def recorded_by_name(self) -> str | None:
        return self.recorded_by.full_name if self.recorded_by else None


__all__ = ["Withdrawal"]
