from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Loan(Base):
    """A checkout of ``quantity`` units of one tool.

    ``quantity`` is fixed at creation. ``status`` moves from ``Active`` to
    ``Returned`` once; the return columns are filled by that transition.
    """

    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True)
    ticket_number = Column(Text, nullable=False, unique=True, index=True)
    tool_id = Column(Integer, ForeignKey("tools.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    responsible = Column(Text, nullable=False)
    usage_location = Column(Text, nullable=False)
    issued_by_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(Text, nullable=False, index=True)
    created_at = Column(Text, nullable=False, index=True)
    returned_at = Column(Text, nullable=True)
    return_notes = Column(Text, nullable=True)
    returned_by_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=True)

    tool = relationship("Tool", lazy="joined")
    issued_by = relationship("User", foreign_keys=[issued_by_id], lazy="joined")
    returned_by = relationship("User", foreign_keys=[returned_by_id], lazy="joined")

    @property
    def tool_name(self) -> str | None:
        return self.tool.name if self.tool else None

    @property
    def tool_quantity_available(self) -> int | None:
        return self.tool.quantity_available if self.tool else None

    @property
    def issued_by_name(self) -> str | None:
        return self.issued_by.full_name if self.issued_by else None

    @property
    def returned_by_name(self) -> str | None:
        return self.returned_by.full_name if self.returned_by else None


__all__ = ["Loan"]
