from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.errors import Unauthenticated
from ..core.security import decode_token, issue_token_pair
from ..crud.users import authenticate_user, get_user
from ..db.session import get_db
from ..schemas.auth import LoginRequest, LoginResponse, RefreshRequest, TokenResponse
from ..schemas.user import UserOut

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse, summary="Exchange credentials for JWTs")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate_user(db, payload.document_number, payload.password)
    pair = issue_token_pair(user.id, user.role)
    return LoginResponse(**pair.model_dump(), user=UserOut.model_validate(user))


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    try:
        claims = decode_token(payload.refresh_token, verify_type="refresh")
    except ValueError as exc:
        raise Unauthenticated("Invalid token") from exc
    # Re-read the account so a role change or deletion takes effect on refresh.
    user = get_user(db, claims.user_id)
    if user is None:
        raise Unauthenticated("Invalid token")
    pair = issue_token_pair(user.id, user.role)
    return TokenResponse(**pair.model_dump())
