"""Loan ticket numbers: ``TICKET-YYYYMMDD-NNNN``.

The sequence restarts at ``0001`` every (UTC) calendar day. Generation is a
plain read-then-compute; two callers can receive the same candidate. The
loan insert re-checks uniqueness and the unique index on
``loans.ticket_number`` settles any race.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import TicketSequenceExhausted
from ..models.loan import Loan

TICKET_PREFIX = "TICKET"
# ASCII digits only; \d would also match fullwidth digits.
TICKET_PATTERN = re.compile(r"TICKET-[0-9]{8}-[0-9]{4}")
MAX_DAILY_SEQUENCE = 9999


def utc_today() -> date:
    return datetime.now(tz=timezone.utc).date()


def ticket_day_prefix(day: date) -> str:
    return f"{TICKET_PREFIX}-{day:%Y%m%d}-"


def format_ticket_number(day: date, sequence: int) -> str:
    if sequence < 1 or sequence > MAX_DAILY_SEQUENCE:
        raise TicketSequenceExhausted(details={"date": day.isoformat(), "sequence": sequence})
    return f"{ticket_day_prefix(day)}{sequence:04d}"


def is_valid_ticket_number(value: str | None) -> bool:
    return bool(value) and bool(TICKET_PATTERN.fullmatch(value))


def parse_ticket_sequence(ticket_number: str | None) -> int | None:
    """Return the trailing sequence of a ticket, or ``None`` if it is malformed."""

    if not ticket_number:
        return None
    tail = ticket_number.rsplit("-", 1)[-1]
    if len(tail) != 4 or not (tail.isascii() and tail.isdigit()):
        return None
    return int(tail)


def generate_ticket_number(db: Session, today: date | None = None) -> str:
    day = today or utc_today()
    prefix = ticket_day_prefix(day)
    rows = db.execute(
        select(Loan.ticket_number).where(Loan.ticket_number.like(f"{prefix}%"))
    ).scalars().all()

    # max + 1, not count + 1: gaps in the day's sequence are never reused.
    highest = 0
    for ticket_number in rows:
        sequence = parse_ticket_sequence(ticket_number)
        if sequence is not None and sequence > highest:
            highest = sequence
    return format_ticket_number(day, highest + 1)


__all__ = [
    "MAX_DAILY_SEQUENCE",
    "TICKET_PATTERN",
    "format_ticket_number",
    "generate_ticket_number",
    "is_valid_ticket_number",
    "parse_ticket_sequence",
    "ticket_day_prefix",
    "utc_today",
]
