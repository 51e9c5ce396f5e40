"""SQLAlchemy model for lendable tools and their stock counters."""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, Integer, Text

from ..db.session import Base


class Tool(Base):
    """A lendable item.

    ``quantity_available + quantity_on_loan == quantity_total`` holds after
    every committed transaction. Only ``crud.tools`` touches the counters.
    """

    __tablename__ = "tools"
    __table_args__ = (
        CheckConstraint("quantity_total >= 0", name="ck_tools_total_nonnegative"),
        CheckConstraint("quantity_available >= 0", name="ck_tools_available_nonnegative"),
        CheckConstraint("quantity_on_loan >= 0", name="ck_tools_on_loan_nonnegative"),
        CheckConstraint(
            "quantity_available + quantity_on_loan = quantity_total",
            name="ck_tools_quantity_conservation",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(Text, nullable=True, unique=True, index=True)
    responsible = Column(Text, nullable=False)
    name = Column(Text, nullable=False, index=True)
    quantity_total = Column(Integer, nullable=False, default=0)
    quantity_available = Column(Integer, nullable=False, default=0)
    quantity_on_loan = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)


__all__ = ["Tool"]
