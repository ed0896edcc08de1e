import logging
import sqlite3
from typing import Optional
from fastapi import APIRouter, Cookie, Depends, HTTPException, Response
from config import ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_COOKIE_NAME, REFRESH_COOKIE_PATH, REFRESH_TOKEN_EXPIRE_DAYS
from models import CurrentUserOut, LoginRequest, RegisterRequest, TokenResponse
from auth import (InvalidToken, authenticate_user, create_access_token, create_refresh_token,
                  decode_token, get_current_user)
from database import bump_token_version, create_user, get_disabled_permissions, get_user_by_id
from security import hash_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def issue_tokens(user: dict, response: Response) -> TokenResponse:
    """Return an access token and set the refresh token cookie"""
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        create_refresh_token(user),
        max_age=REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        httponly=True,
        samesite="lax",
        path=REFRESH_COOKIE_PATH,
    )
    return TokenResponse(
        access_token=create_access_token(user),
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, response: Response):
    """Authenticate user and return JWT token"""
    user = authenticate_user(request.username, request.password)
    if not user:
        logger.info("Failed login for %s", request.username)
        raise HTTPException(status_code=401, detail="Incorrect username or password")
    if not user["is_active"]:
        logger.info("Login refused for suspended account %s", request.username)
        raise HTTPException(status_code=403, detail="Account is suspended")

    logger.info("User %s logged in as %s", user["id"], user["role"])
    return issue_tokens(user, response)


@router.post("/register", response_model=TokenResponse, status_code=201)
def register(request: RegisterRequest, response: Response):
    """Self-service signup; always creates a patient account"""
    try:
        new_id = create_user(
            request.username,
            hash_password(request.password),
            "patient",
            request.first_name,
            request.last_name,
            request.email,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Username already exists")

    logger.info("Registered patient account %s", new_id)
    return issue_tokens(get_user_by_id(new_id), response)


@router.post("/refresh-token", response_model=TokenResponse)
def refresh_token(response: Response, refresh_token: Optional[str] = Cookie(default=None)):
    """Exchange the refresh cookie for a new access token"""
    if not refresh_token:
        raise HTTPException(status_code=401, detail="Missing refresh token")
    try:
        payload = decode_token(refresh_token, "refresh")
        user = get_user_by_id(int(payload["sub"]))
    except (InvalidToken, ValueError):
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    if user is None or not user["is_active"] or payload.get("ver") != user["token_version"]:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    logger.info("Refreshed access token for user %s", user["id"])
    return issue_tokens(user, response)


@router.post("/logout", status_code=204)
def logout(refresh_token: Optional[str] = Cookie(default=None)):
    """Revoke refresh tokens for the cookie's user and clear the cookie"""
    if refresh_token:
        try:
            payload = decode_token(refresh_token, "refresh")
            user = get_user_by_id(int(payload["sub"]))
        except (InvalidToken, ValueError):
            user = None
        if user is not None and payload.get("ver") == user["token_version"]:
            bump_token_version(user["id"])
            logger.info("User %s logged out", user["id"])
    response = Response(status_code=204)
    response.delete_cookie(REFRESH_COOKIE_NAME, path=REFRESH_COOKIE_PATH)
    return response


@router.get("/me", response_model=CurrentUserOut)
def me(current_user: dict = Depends(get_current_user)):
    """Current user with effective and disabled permissions"""
    return {**current_user, "disabled_permissions": get_disabled_permissions(current_user["id"])}
