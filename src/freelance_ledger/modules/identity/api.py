from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from freelance_ledger.api.deps import get_current_user
from freelance_ledger.core.db import db_session
from freelance_ledger.core.logging import get_logger, log_event
from freelance_ledger.core.security import create_access_token
from freelance_ledger.modules.identity.models import User
from freelance_ledger.modules.identity.schemas import RegisterIn, TokenOut, UserOut
from freelance_ledger.modules.identity.service import authenticate_user, create_user

router = APIRouter(tags=["identity"])
logger = get_logger(__name__)


@router.post("/auth/register", response_model=TokenOut, status_code=201)
def register(payload: RegisterIn, session: Session = Depends(db_session)) -> TokenOut:
    user = create_user(
        session,
        email=str(payload.email),
        password=payload.password,
        full_name=payload.full_name,
    )
    log_event(logger, "auth.register", user_id=str(user.id))
    return TokenOut(access_token=create_access_token(subject=str(user.id)))


@router.post("/auth/token", response_model=TokenOut)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(db_session),
) -> TokenOut:
    user = authenticate_user(session, email=form_data.username, password=form_data.password)
    log_event(logger, "auth.login", user_id=str(user.id))
    return TokenOut(access_token=create_access_token(subject=str(user.id)))


@router.get("/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.model_validate(user, from_attributes=True)
