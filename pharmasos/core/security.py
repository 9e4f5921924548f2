"""Bearer token helpers.

Tokens are issued by the auth service; this backend only reads them.
`create_access_token` exists for local tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from pharmasos.core.config import settings


def create_access_token(subject: str, extra: dict[str, Any] | None = None) -> str:
    """Sign a token whose `sub` is the user id."""
    issued = datetime.now(timezone.utc)
    claims: dict[str, Any] = {**(extra or {})}
    claims.update(
        sub=str(subject),
        iat=issued,
        exp=issued + timedelta(minutes=settings.jwt_expire_minutes),
    )
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Claims of a valid, unexpired token; None otherwise."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
