"""
Authentication & authorization helpers.
Handles password hashing, JWT creation/verification, and the route
dependencies that resolve the calling user and check roles.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt
from bson.errors import InvalidId
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bikerhub import database
from bikerhub.config import settings
from bikerhub.errors import AuthError, ForbiddenError
from bikerhub.schemas import User

bearer_scheme = HTTPBearer(auto_error=False)


# --------------- Password hashing ---------------------------------------

def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode(), salt).decode()


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        return False


# --------------- Tokens --------------------------------------------------

def _create_token(user: User, token_type: str, minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "role": user.role,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user: User) -> str:
    return _create_token(user, "access", settings.JWT_EXPIRES_MINUTES)


def create_refresh_token(user: User) -> str:
    return _create_token(user, "refresh", settings.JWT_REFRESH_EXPIRES_MINUTES)


def issue_tokens(user: User) -> dict[str, Any]:
    return {
        "token": create_access_token(user),
        "refresh_token": create_refresh_token(user),
        "token_type": "bearer",
        "expires_in": settings.JWT_EXPIRES_MINUTES * 60,
    }


def decode_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """Verify signature, expiry, issuer and audience. Raises jwt errors."""
    data = jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
    )
    if data.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected a {expected_type} token")
    return data


def token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get("token") or request.query_params.get("token")


async def load_token_user(data: dict[str, Any]) -> User:
    """Resolve the user a verified token points at; 401 when it points nowhere."""
    try:
        doc = await database.get_document(database.USERS, str(data.get("sub", "")))
    except InvalidId:
        doc = None
    if not doc:
        raise AuthError("Token is not valid")
    return User.model_validate(doc)


# --------------- Dependencies --------------------------------------------

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    token = token_from_request(request, credentials)
    if not token:
        raise AuthError("No token, authorization denied")

    user = await load_token_user(decode_token(token))
    if not user.is_active:
        raise AuthError("Account is deactivated")

    request.state.user = user
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise ForbiddenError("Access denied. Admin privileges required.")
    return user


async def require_moderator(user: User = Depends(get_current_user)) -> User:
    if user.role not in ("admin", "moderator"):
        raise ForbiddenError("Access denied. Moderator or admin privileges required.")
    return user


def ensure_owner_or_admin(user: User, owner_id: Optional[str]) -> None:
    if user.role == "admin":
        return
    if owner_id is not None and str(owner_id) == str(user.id):
        return
    raise ForbiddenError("Access denied. You can only access your own resources.")
