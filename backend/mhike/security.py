"""
M-Hike API: Authentication Helpers
====================================

What:  Password hashing, JWT issuance/decoding, and the current-user
       dependency used by every protected route.
How:   bcrypt for password hashes; python-jose for HS256 tokens carrying
       `sub` (user id), `username`, `email`, `iat` and `exp`.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from mhike.config import Settings, get_settings
from mhike.exceptions import AuthenticationFailed

http_bearer = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    """The authenticated caller, as described by their token."""

    user_id: int
    username: str
    email: str


# ── Passwords ─────────────────────────────────────────────────────────────

def hash_password(password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the row
        return False


# ── Tokens ────────────────────────────────────────────────────────────────

def create_access_token(
    settings: Settings,
    user_id: int,
    username: str,
    email: str,
    expires_hours: Optional[int] = None,
) -> str:
    """Sign a bearer token for the given user."""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=expires_hours or settings.jwt_expire_hours)
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "username": username,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(settings: Settings, token: str) -> Principal:
    """Decode and validate a bearer token. Raises AuthenticationFailed."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationFailed(
            message="Invalid or expired token",
            context={"reason": str(exc)},
        ) from exc

    try:
        return Principal(
            user_id=int(payload["sub"]),
            username=str(payload.get("username", "")),
            email=str(payload.get("email", "")),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise AuthenticationFailed(message="Invalid or expired token") from exc


async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """FastAPI dependency: the caller's Principal, or 401."""
    if creds is None or not creds.credentials:
        raise AuthenticationFailed(message="Access token required")
    return decode_access_token(settings, creds.credentials)
