import logging
import sqlite3
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from models import (CurrentUserOut, DisabledPermissionsUpdate, NavigationItem, PasswordChange,
                    RoleUpdate, StatusUpdate, UserCreate, UserOut)
from auth import get_current_user, load_user, require_permission
from catalog import permission_names, role_names
from database import (create_user, get_disabled_permissions, get_user_by_id, list_users,
                      set_disabled_permissions, set_user_active, update_user_password,
                      update_user_role)
from navigation import visible_items
from permissions import get_permission_categories, get_permissions_by_category
from security import hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["User Management"])


def _get_user_or_404(user_id: int) -> dict:
    user = get_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _check_role(role: str):
    valid_roles = role_names()
    if role not in valid_roles:
        raise HTTPException(status_code=400, detail=f"Invalid role. Must be one of: {valid_roles}")


@router.post("/", status_code=201, response_model=UserOut)
def create_user_account(
    user_data: UserCreate,
    current_user: dict = Depends(require_permission("create_users"))
):
    """Create staff or patient accounts"""
    _check_role(user_data.role)
    try:
        new_id = create_user(
            user_data.username,
            hash_password(user_data.password),
            user_data.role,
            user_data.first_name,
            user_data.last_name,
            user_data.email,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Username already exists")

    logger.info("User %s created account %s with role %s", current_user["id"], new_id, user_data.role)
    return get_user_by_id(new_id)


@router.get("/", response_model=List[UserOut])
def list_user_accounts(
    role: Optional[str] = None,
    current_user: dict = Depends(require_permission("view_all_users"))
):
    return list_users(role)


@router.get("/me", response_model=CurrentUserOut)
def get_current_user_info(current_user: dict = Depends(get_current_user)):
    """Get current user info"""
    return {**current_user, "disabled_permissions": get_disabled_permissions(current_user["id"])}


@router.get("/me/permissions")
def get_current_user_permissions(current_user: dict = Depends(get_current_user)):
    """Effective permissions grouped by category"""
    permissions = current_user["permissions"]
    return {
        "role": current_user["role"],
        "total": len(permissions),
        "categories": {
            category: [p["name"] for p in get_permissions_by_category(permissions, category)]
            for category in get_permission_categories(permissions)
        },
    }


@router.get("/me/navigation", response_model=List[NavigationItem])
def get_current_user_navigation(current_user: dict = Depends(get_current_user)):
    return visible_items(current_user["permission_names"])


@router.patch("/me/password", status_code=204)
def change_own_password(update: PasswordChange, current_user: dict = Depends(get_current_user)):
    """Change the caller's password; outstanding refresh tokens stop working"""
    if not verify_password(update.current_password, current_user["password_hash"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    update_user_password(current_user["id"], hash_password(update.new_password))
    logger.info("User %s changed their password", current_user["id"])


@router.get("/{user_id}", response_model=UserOut)
def get_user_account(
    user_id: int,
    current_user: dict = Depends(require_permission("view_all_users"))
):
    return _get_user_or_404(user_id)


@router.patch("/{user_id}/role", response_model=UserOut)
def change_user_role(
    user_id: int,
    update: RoleUpdate,
    current_user: dict = Depends(require_permission("modify_user_roles"))
):
    """Change a user's role; outstanding refresh tokens stop working"""
    _check_role(update.role)
    user = _get_user_or_404(user_id)
    update_user_role(user_id, update.role)
    logger.info("User %s changed role of %s from %s to %s",
                current_user["id"], user_id, user["role"], update.role)
    return get_user_by_id(user_id)


@router.patch("/{user_id}/status", response_model=UserOut)
def change_user_status(
    user_id: int,
    update: StatusUpdate,
    current_user: dict = Depends(require_permission("suspend_activate_accounts"))
):
    """Suspend or reactivate an account"""
    _get_user_or_404(user_id)
    if user_id == current_user["id"] and not update.is_active:
        raise HTTPException(status_code=400, detail="You cannot suspend your own account")
    set_user_active(user_id, update.is_active)
    logger.info("User %s set account %s active=%s", current_user["id"], user_id, update.is_active)
    return get_user_by_id(user_id)


@router.put("/{user_id}/disabled-permissions", response_model=CurrentUserOut)
def replace_disabled_permissions(
    user_id: int,
    update: DisabledPermissionsUpdate,
    current_user: dict = Depends(require_permission("modify_user_roles"))
):
    """Replace the per-user permission deny list"""
    user = _get_user_or_404(user_id)
    known = set(permission_names())
    unknown = [name for name in update.permissions if name not in known]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown permissions: {unknown}")

    set_disabled_permissions(user_id, update.permissions)
    logger.info("User %s set disabled permissions of %s to %s",
                current_user["id"], user_id, update.permissions)

    refreshed = load_user(user_id) or {**user, "permissions": []}
    return {**refreshed, "disabled_permissions": get_disabled_permissions(user_id)}
