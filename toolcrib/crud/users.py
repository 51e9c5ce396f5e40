"""User account helpers: registration, lookup, login and maintenance."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.constants import ROLE_ADMINISTRATOR, normalize_role
from ..core.errors import DuplicateUser, InvalidCredentials, ReferencedRecord, ValidationFailed
from ..core.security import hash_password, verify_password
from ..models.loan import Loan
from ..models.user import User
from ..models.withdrawal import Withdrawal

logger = logging.getLogger("toolcrib.users")

REQUIRED_FIELDS = ("document_number", "full_name", "email", "role")


def _utcnow() -> str:
    return datetime.now(tz=timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def _clean(value: object) -> str:
    return str(value or "").strip()


def _identity_taken(db: Session, document_number: str, email: str, exclude_user_id: int | None = None) -> bool:
    stmt = select(User.id).where(
        or_(User.document_number == document_number, User.email == email)
    )
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    return db.execute(stmt).first() is not None


def list_users(db: Session, limit: int = 200, offset: int = 0) -> list[User]:
    stmt = select(User).order_by(User.full_name, User.id).limit(limit).offset(offset)
    return db.execute(stmt).scalars().all()


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_user_by_document(db: Session, document_number: str) -> User | None:
    stmt = select(User).where(User.document_number == _clean(document_number))
    return db.execute(stmt).scalars().first()


def create_user(db: Session, payload: dict) -> User:
    data = {field: _clean(payload.get(field)) for field in REQUIRED_FIELDS}
    password = payload.get("password") or ""
    missing = [field for field, value in data.items() if not value]
    if not password:
        missing.append("password")
    if missing:
        raise ValidationFailed("All fields are required", details={"missing": missing})
    role = normalize_role(data["role"])
    if role is None:
        raise ValidationFailed("Unknown role", details={"role": data["role"]})
    email = data["email"].lower()
    if _identity_taken(db, data["document_number"], email):
        raise DuplicateUser()

    user = User(
        document_number=data["document_number"],
        full_name=data["full_name"],
        email=email,
        role=role,
        password_hash=hash_password(password),
        created_at=_utcnow(),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateUser() from exc
    db.refresh(user)
    logger.info("user.registered", extra={"extra_data": {"user_id": user.id, "role": role}})
    return user


def update_user(db: Session, user: User, payload: dict) -> User:
    data = {field: _clean(payload.get(field)) for field in REQUIRED_FIELDS if field in payload}
    missing = [field for field, value in data.items() if not value]
    if missing:
        raise ValidationFailed("All fields are required", details={"missing": missing})
    if "role" in data:
        role = normalize_role(data["role"])
        if role is None:
            raise ValidationFailed("Unknown role", details={"role": data["role"]})
        data["role"] = role
    if "email" in data:
        data["email"] = data["email"].lower()
    document_number = data.get("document_number", user.document_number)
    email = data.get("email", user.email)
    if _identity_taken(db, document_number, email, exclude_user_id=user.id):
        raise DuplicateUser()

    for field, value in data.items():
        setattr(user, field, value)
    if payload.get("password"):
        user.password_hash = hash_password(payload["password"])
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateUser() from exc
    db.refresh(user)
    return user


def delete_user(db: Session, user: User) -> None:
    referenced = db.execute(
        select(Loan.id)
        .where(or_(Loan.issued_by_id == user.id, Loan.returned_by_id == user.id))
        .limit(1)
    ).first()
    if referenced:
        raise ReferencedRecord("User is referenced by loan history and cannot be deleted")
    recorded = db.execute(select(Withdrawal.id).where(Withdrawal.recorded_by_id == user.id).limit(1)).first()
    if recorded:
        raise ReferencedRecord("User is referenced by withdrawal history and cannot be deleted")
    db.delete(user)
    db.commit()


def authenticate_user(db: Session, document_number: str, password: str) -> User:
    user = get_user_by_document(db, document_number)
    # Same error for unknown users and wrong passwords.
    if user is None or not verify_password(password or "", user.password_hash):
        raise InvalidCredentials()
    return user


def ensure_bootstrap_admin(
    db: Session,
    *,
    document_number: str,
    password: str,
    full_name: str,
    email: str,
) -> User | None:
    """Create the first administrator if that document number is unused."""

    if get_user_by_document(db, document_number):
        return None
    user = create_user(
        db,
        {
            "document_number": document_number,
            "full_name": full_name,
            "email": email,
            "role": ROLE_ADMINISTRATOR,
            "password": password,
        },
    )
    logger.info("user.bootstrap_admin_created", extra={"extra_data": {"user_id": user.id}})
    return user
