"""
Auth routes: username/password registration and login with a cookie session.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from veracity.core.auth import (
    clear_session_cookie,
    get_optional_user,
    hash_password,
    set_session_cookie,
    verify_password,
)
from veracity.core.dependencies import get_user_service
from veracity.schemas.auth import AuthResponse, LoginRequest, RegisterRequest
from veracity.services.user_service import UserService, public_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/register", response_model=AuthResponse)
def register(
    body: RegisterRequest,
    response: Response,
    users: UserService = Depends(get_user_service),
):
    if users.get_by_username(body.username):
        raise HTTPException(status_code=409, detail="Username already exists")

    user = users.create(body.username, hash_password(body.password))
    set_session_cookie(response, user["id"])
    return {"success": True, "user": public_user(user)}


@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    response: Response,
    users: UserService = Depends(get_user_service),
):
    user = users.get_by_username(body.username)
    if not user or not verify_password(body.password, user.get("password_hash")):
        logger.info(f"[AUTH] Failed login for {body.username}")
        raise HTTPException(status_code=401, detail="Invalid username or password")

    users.touch_sign_in(user["id"])
    set_session_cookie(response, user["id"])
    return {"success": True, "user": public_user(user)}


@router.post("/logout")
def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True}


@router.get("/me")
def me(user: Optional[dict] = Depends(get_optional_user)):
    return public_user(user)
