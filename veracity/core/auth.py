"""
Session authentication: bcrypt password hashing, HS256 session JWTs carried
in an httpOnly cookie, and the FastAPI dependencies that resolve the caller.

Protected routes depend on `get_current_user`; routes that merely want to
know who is calling use `get_optional_user`.
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response
from jose import JWTError, jwt
from passlib.context import CryptContext

from veracity.config import settings
from veracity.core.dependencies import get_user_service
from veracity.services.user_service import UserService

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.password_hash_rounds,
)


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"[AUTH] Password verification error: {e}")
        return False


def _secret() -> str:
    if not settings.jwt_secret:
        logger.error("[AUTH] JWT_SECRET is not configured")
        raise HTTPException(status_code=500, detail="Authentication is not configured.")
    return settings.jwt_secret


def create_session_token(user_id: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(days=settings.session_ttl_days),
    }
    return jwt.encode(payload, _secret(), algorithm=settings.jwt_algorithm)


def decode_session_token(token: str) -> Optional[str]:
    """Return the user id carried by a valid session token, or None."""
    try:
        payload = jwt.decode(token, _secret(), algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug(f"[AUTH] Rejected session token: {e}")
        return None
    return payload.get("sub")


def set_session_cookie(response: Response, user_id: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(user_id),
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        path="/",
    )


def get_optional_user(
    request: Request, users: UserService = Depends(get_user_service)
) -> Optional[dict]:
    token = request.cookies.get(settings.session_cookie_name)
    if not token:
        return None
    user_id = decode_session_token(token)
    if not user_id:
        return None
    return users.get_by_id(user_id)


def get_current_user(user: Optional[dict] = Depends(get_optional_user)) -> dict:
    if not user:
        raise HTTPException(status_code=401, detail="Please login")
    return user
