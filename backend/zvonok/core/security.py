"""
Caller identity.

Tokens are issued by the auth service; this service only verifies them and
reads the numeric user id from the ``sub`` claim.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from zvonok.core.config import settings

bearer_scheme = HTTPBearer()


def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a token the way the auth service does; used by tests and local tooling."""
    lifetime = expires_delta or timedelta(hours=settings.JWT_EXPIRATION_HOURS)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _credentials_error()


def user_id_from_claims(claims: dict) -> int:
    subject = claims.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise _credentials_error()


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> dict:
    claims = decode_token(credentials.credentials)
    return {"user_id": user_id_from_claims(claims), "payload": claims}
