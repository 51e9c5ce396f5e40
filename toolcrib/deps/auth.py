"""Access guard: who is calling, and may they do this?

``authenticate`` turns the ``Authorization: Bearer`` header into an
``Identity`` or fails with 401. ``require_role`` builds a dependency that
additionally demands a role and fails with 403. Routers attach these as
dependencies; handlers never inspect tokens or roles themselves.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, Request
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.constants import ROLE_ADMINISTRATOR
from ..core.errors import Forbidden, Unauthenticated
from ..core.security import decode_token
from ..crud.users import get_user
from ..db.session import get_db
from ..middlewares import principal_ctx_var


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str

    @property
    def principal(self) -> str:
        return f"user:{self.user_id}"

    def has_role(self, role: str) -> bool:
        return self.role == role

    @property
    def is_admin(self) -> bool:
        return self.has_role(ROLE_ADMINISTRATOR)


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


def authenticate(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> Identity:
    if not authorization:
        raise Unauthenticated("Token not provided")
    scheme, credentials = get_authorization_scheme_param(authorization)
    if scheme.lower() != "bearer" or not credentials:
        raise Unauthenticated("Token not provided")
    try:
        payload = decode_token(credentials, verify_type="access")
    except ValueError as exc:
        raise Unauthenticated("Invalid token") from exc
    # Deleted accounts lose access at once; role changes apply without re-login.
    user = get_user(db, payload.user_id)
    if user is None:
        raise Unauthenticated("Invalid token")
    identity = Identity(user_id=user.id, role=user.role)
    _set_principal(request, identity.principal)
    return identity


def authorize(identity: Identity, role: str) -> Identity:
    if not identity.has_role(role):
        raise Forbidden()
    return identity


def require_role(role: str):
    def dependency(identity: Identity = Depends(authenticate)) -> Identity:
        return authorize(identity, role)

    dependency.__name__ = f"require_{role.lower()}"
    return dependency


require_admin = require_role(ROLE_ADMINISTRATOR)
