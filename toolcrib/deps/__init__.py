"""Beginner-friendly overview for this module.

WHAT: Request dependencies shared by the toolcrib API routers.
WHEN: Resolved by FastAPI before a route handler runs.
WHY: Authentication and role checks live in one place instead of in every handler.
HOW: Import ``authenticate`` or ``require_admin`` from ``toolcrib.deps.auth`` and
attach them with ``Depends``.

File: toolcrib/deps/__init__.py
"""

from .auth import Identity, authenticate, require_admin, require_role

__all__ = ["Identity", "authenticate", "require_admin", "require_role"]
