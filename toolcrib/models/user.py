from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class User(Base):
    """Staff account. ``password_hash`` never leaves the service."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    document_number = Column(Text, nullable=False, unique=True, index=True)
    full_name = Column(Text, nullable=False)
    email = Column(Text, nullable=False, unique=True, index=True)
    role = Column(Text, nullable=False)
    password_hash = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)


__all__ = ["User"]
