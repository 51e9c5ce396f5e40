from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.errors import Forbidden, UserNotFound
from ..crud.users import create_user, delete_user, get_user, list_users, update_user
from ..db.session import get_db
from ..deps.auth import Identity, authenticate, require_admin
from ..schemas.user import UserCreate, UserOut, UserUpdate

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/register", response_model=UserOut, status_code=201)
def api_register(payload: UserCreate, db: Session = Depends(get_db), _: Identity = Depends(require_admin)):
    return create_user(db, payload.model_dump())


@router.get("", response_model=list[UserOut], dependencies=[Depends(authenticate)])
def api_list(limit: int = 200, offset: int = 0, db: Session = Depends(get_db)):
    return list_users(db, limit=min(max(limit, 1), 500), offset=max(offset, 0))


@router.get("/{user_id}", response_model=UserOut, dependencies=[Depends(authenticate)])
def api_get(user_id: int, db: Session = Depends(get_db)):
    user = get_user(db, user_id)
    if not user:
        raise UserNotFound()
    return user


@router.put("/{user_id}", response_model=UserOut)
def api_update(
    user_id: int,
    payload: UserUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(authenticate),
):
    # Users may edit their own profile; everything else is admin-only.
    if identity.user_id != user_id and not identity.is_admin:
        raise Forbidden("You do not have permission to update this user")
    data = payload.model_dump(exclude_unset=True)
    if "role" in data and not identity.is_admin:
        raise Forbidden("Only administrators can change roles")
    user = get_user(db, user_id)
    if not user:
        raise UserNotFound()
    return update_user(db, user, data)


@router.delete("/{user_id}", dependencies=[Depends(require_admin)])
def api_delete(user_id: int, db: Session = Depends(get_db)):
    user = get_user(db, user_id)
    if not user:
        raise UserNotFound()
    delete_user(db, user)
    return {"status": "deleted"}
