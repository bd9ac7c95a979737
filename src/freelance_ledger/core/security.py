from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from freelance_ledger.core.config import settings

_ALGORITHM = "HS256"
_TOKEN_TYPE = "access"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(*, subject: str, expires_minutes: int | None = None) -> str:
    issued = datetime.now(UTC)
    lifetime = timedelta(minutes=expires_minutes or settings.access_token_exp_minutes)
    claims = {"sub": subject, "typ": _TOKEN_TYPE, "iat": issued, "exp": issued + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> uuid.UUID | None:
    """Return the user id carried by a valid access token, else None."""
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if claims.get("typ") != _TOKEN_TYPE:
        return None
    try:
        return uuid.UUID(str(claims.get("sub")))
    except ValueError:
        return None
