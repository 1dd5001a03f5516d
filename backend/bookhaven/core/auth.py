"""
Authentication helpers: verify the bearer token issued by the auth service and
resolve the current User.

Sign-up, login and password flows live in that service, not here.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from bookhaven.core.security import decode_access_token
from bookhaven.database import get_db
from bookhaven.models import User

logger = logging.getLogger(__name__)


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_bearer_token(request: Request) -> Optional[str]:
    """
    Extract 'Bearer <token>' from Authorization header.
    Returns None when the header is absent.
    """
    auth = request.headers.get("Authorization")
    if not auth:
        return None

    parts = auth.split()
    if len(parts) != 2:
        raise _unauthorized("Invalid Authorization header format. Expected 'Bearer <token>'")

    scheme, token = parts
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid auth scheme. Expected 'Bearer'")

    if not token.strip():
        raise _unauthorized("Empty bearer token")

    return token


def _user_from_token(db: Session, token: str) -> User:
    payload = decode_access_token(token)
    if payload is None:
        logger.warning("JWT validation failed")
        raise _unauthorized("Token validation failed")

    sub = payload.get("sub")
    if sub is None:
        raise _unauthorized("Token missing subject (sub)")

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise _unauthorized("Token subject is not a user id")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise _unauthorized("User no longer exists")
    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
) -> User:
    """
    FastAPI dependency: returns the current authenticated User, or 401.

    - Reads Authorization: Bearer <token>
    - Verifies the HS256 JWT
    - Loads the User whose id is the token's sub
    """
    token = _extract_bearer_token(request)
    if token is None:
        raise _unauthorized("Missing Authorization header")
    return _user_from_token(db, token)


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous or invalid credentials yield None."""
    try:
        token = _extract_bearer_token(request)
        if token is None:
            return None
        return _user_from_token(db, token)
    except HTTPException:
        return None
