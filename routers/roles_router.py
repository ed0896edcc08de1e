from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from models import PermissionOut, RoleOut
from auth import get_current_user
from catalog import category_names
from database import get_role, list_permissions, list_roles

router = APIRouter(tags=["Roles & Permissions"])


@router.get("/roles", response_model=List[RoleOut])
def get_roles(current_user: dict = Depends(get_current_user)):
    return list_roles()


@router.get("/roles/{name}", response_model=RoleOut)
def get_role_detail(name: str, current_user: dict = Depends(get_current_user)):
    role = get_role(name)
    if role is None:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


@router.get("/permissions", response_model=List[PermissionOut])
def get_permissions(category: Optional[str] = None, current_user: dict = Depends(get_current_user)):
    """Seeded permissions, optionally limited to one category"""
    if category and category not in category_names():
        raise HTTPException(status_code=400, detail=f"Unknown category: {category}")
    return list_permissions(category)


@router.get("/permissions/categories", response_model=List[str])
def get_categories(current_user: dict = Depends(get_current_user)):
    return category_names()
