import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence
from fastapi import Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, REFRESH_TOKEN_EXPIRE_DAYS
from database import get_user_by_id, get_user_by_username, get_effective_permissions
from permissions import has_permission, has_any_permission, has_all_permissions
from security import verify_password

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

PUBLIC_PATHS = {
    "/", "/docs", "/openapi.json", "/redoc",
    "/auth/login", "/auth/register", "/auth/refresh-token", "/auth/logout",
}


class InvalidToken(Exception):
    pass


def authenticate_user(username: str, password: str):
    """Authenticate user against SQLite database"""
    user = get_user_by_username(username)
    if user and verify_password(password, user["password_hash"]):
        return user
    return None


def _encode(claims: dict, expires: timedelta) -> str:
    to_encode = claims.copy()
    to_encode["exp"] = datetime.now(timezone.utc) + expires
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_access_token(user: dict) -> str:
    """Create short-lived JWT access token"""
    return _encode(
        {"sub": str(user["id"]), "role": user["role"], "type": "access"},
        timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user: dict) -> str:
    """Create refresh token bound to the user's current token version"""
    return _encode(
        {"sub": str(user["id"]), "type": "refresh", "ver": user["token_version"]},
        timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_token(token: str, token_type: str) -> dict:
    """Decode and type-check a token, returning its claims"""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        raise InvalidToken(str(e)) from e
    if payload.get("type") != token_type or payload.get("sub") is None:
        raise InvalidToken(f"Not a {token_type} token")
    return payload


def load_user(user_id: int) -> Optional[dict]:
    """Active user with effective permissions attached"""
    user = get_user_by_id(user_id)
    if user is None or not user["is_active"]:
        return None
    user["permissions"] = get_effective_permissions(user)
    user["permission_names"] = [p["name"] for p in user["permissions"]]
    return user


def user_from_access_token(token: str) -> dict:
    try:
        payload = decode_token(token, "access")
        user = load_user(int(payload["sub"]))
    except (InvalidToken, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """Get current user from JWT token.

    Reuses the user id the middleware decoded when it ran for this request.
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        return user_from_access_token(credentials.credentials)
    user = load_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def _deny(user: dict, request: Request, requirement: str):
    logger.warning("Access denied: user=%s role=%s path=%s requires %s",
                   user["id"], user["role"], request.url.path, requirement)
    raise HTTPException(status_code=403, detail=f"Permission required: {requirement}")


def guard(
    permission: Optional[str] = None,
    permissions: Optional[Sequence[str]] = None,
    require_all: bool = False,
    role: Optional[str] = None,
    roles: Optional[Sequence[str]] = None,
):
    """Dependency checking role, then single permission, then permission set.

    ``permissions`` uses OR logic unless ``require_all`` is set.
    """
    def check(request: Request, current_user: dict = Depends(get_current_user)):
        if role and current_user["role"] != role:
            _deny(current_user, request, f"role {role}")
        if roles and current_user["role"] not in roles:
            _deny(current_user, request, f"one of roles {', '.join(roles)}")

        held = current_user["permission_names"]
        if permission and not has_permission(held, permission):
            _deny(current_user, request, permission)
        if permissions:
            allowed = (has_all_permissions(held, permissions) if require_all
                       else has_any_permission(held, permissions))
            if not allowed:
                joiner = " and " if require_all else " or "
                _deny(current_user, request, joiner.join(permissions))
        return current_user
    return check


def require_permission(permission: str):
    """Dependency requiring a specific permission"""
    return guard(permission=permission)


def require_any_permission(*permissions: str):
    return guard(permissions=permissions)


def require_all_permissions(*permissions: str):
    return guard(permissions=permissions, require_all=True)


def require_role(role: str):
    return guard(role=role)


def require_roles(*roles: str):
    return guard(roles=roles)


async def jwt_middleware(request: Request, call_next):
    """JWT Authentication Middleware"""
    # Skip auth for public endpoints
    if request.url.path in PUBLIC_PATHS or request.method == "OPTIONS":
        return await call_next(request)

    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return JSONResponse(status_code=401, content={"detail": "Missing or invalid authorization header"})

    try:
        payload = decode_token(auth_header.split(" ", 1)[1], "access")
        user_id = int(payload["sub"])
    except (InvalidToken, ValueError):
        return JSONResponse(status_code=401, content={"detail": "Invalid token"})

    request.state.user_id = user_id
    return await call_next(request)
