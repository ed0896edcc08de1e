"""Permission evaluation primitives.

User permissions arrive either as permission dicts (``name``, ``description``,
``category``) loaded from the database, or as plain permission names. Every
function here accepts both.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar, Union

PermissionLike = Union[str, Dict[str, Any]]
T = TypeVar("T")


def _name(permission: PermissionLike) -> str:
    if isinstance(permission, dict):
        return permission["name"]
    return permission


def _name_set(user_permissions: Iterable[PermissionLike]) -> set:
    return {_name(p) for p in user_permissions or []}


def has_permission(user_permissions: Iterable[PermissionLike], required: str) -> bool:
    """Check if the user holds a specific permission."""
    return required in _name_set(user_permissions)


def has_any_permission(user_permissions: Iterable[PermissionLike], required: Sequence[str]) -> bool:
    """OR logic: at least one of ``required`` is held. Empty ``required`` is False."""
    held = _name_set(user_permissions)
    return any(p in held for p in required)


def has_all_permissions(user_permissions: Iterable[PermissionLike], required: Sequence[str]) -> bool:
    """AND logic: every permission in ``required`` is held. Empty ``required`` is True."""
    held = _name_set(user_permissions)
    return all(p in held for p in required)


def has_role(user: Optional[Dict[str, Any]], role_name: str) -> bool:
    """Check if the user's role is ``role_name``."""
    if not user:
        return False
    return user.get("role") == role_name


def has_any_role(user: Optional[Dict[str, Any]], role_names: Sequence[str]) -> bool:
    if not user:
        return False
    return user.get("role") in role_names


def get_permissions_by_category(permissions: Iterable[Dict[str, Any]], category: str) -> List[Dict[str, Any]]:
    return [p for p in permissions if p.get("category") == category]


def get_permission_categories(permissions: Iterable[Dict[str, Any]]) -> List[str]:
    """Unique categories in first-seen order."""
    categories: List[str] = []
    for p in permissions:
        category = p.get("category")
        if category not in categories:
            categories.append(category)
    return categories


def filter_by_permission(
    items: Iterable[T],
    user_permissions: Iterable[PermissionLike],
    get_required_permission: Callable[[T], Optional[str]],
) -> List[T]:
    """Keep items whose required permission is held, or that require none."""
    held = _name_set(user_permissions)
    visible = []
    for item in items:
        required = get_required_permission(item)
        if not required or required in held:
            visible.append(item)
    return visible


def can_access_resource(
    user_permissions: Iterable[PermissionLike],
    require_all: Optional[Sequence[str]] = None,
    require_any: Optional[Sequence[str]] = None,
) -> bool:
    """Check combined requirements. Omitted lists are not evaluated."""
    held = _name_set(user_permissions)
    if require_all is not None and not has_all_permissions(held, require_all):
        return False
    if require_any is not None and not has_any_permission(held, require_any):
        return False
    return True


def get_permission_names(permissions: Iterable[PermissionLike]) -> List[str]:
    return [_name(p) for p in permissions]


def access_scope(
    user_permissions: Iterable[PermissionLike],
    all_permission: str,
    own_permission: Optional[str] = None,
    assigned_permission: Optional[str] = None,
) -> Optional[str]:
    """Widest list scope the user holds: "all", "assigned", "own" or None."""
    held = _name_set(user_permissions)
    if all_permission in held:
        return "all"
    if assigned_permission and assigned_permission in held:
        return "assigned"
    if own_permission and own_permission in held:
        return "own"
    return None
