from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from freelance_ledger.core.db import db_session
from freelance_ledger.core.logging import set_user_context
from freelance_ledger.core.security import decode_access_token
from freelance_ledger.modules.identity.models import User

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(db_session),
) -> User:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Unauthorized")

    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise _unauthorized("Invalid token")

    user = session.get(User, user_id)
    if user is None or not user.is_active:
        raise _unauthorized("Invalid user")
    set_user_context(str(user.id))
    return user
