"""Free-text search helpers shared by the list endpoints."""

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """``%term%`` with LIKE wildcards in ``term`` matched literally."""

    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"%{escaped}%"


def matches_any(term: str | None, *columns) -> ColumnElement[bool] | None:
    """Case-insensitive substring match on any of ``columns``; ``None`` for a blank term."""

    cleaned = (term or "").strip()
    if not cleaned:
        return None
    pattern = contains_pattern(cleaned)
    return or_(*(column.ilike(pattern, escape=LIKE_ESCAPE) for column in columns))
