"""Lookups and state-transition checks shared by the clinical routers."""

import logging
from typing import Dict, Iterable
from fastapi import HTTPException
from database import get_row, get_user_by_id

logger = logging.getLogger(__name__)


def get_or_404(table: str, row_id: int, label: str) -> dict:
    record = get_row(table, row_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return record


def get_user_with_role(user_id: int, role: str, label: str) -> dict:
    """User that exists and holds ``role``, else 404"""
    user = get_user_by_id(user_id)
    if not user or user["role"] != role:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return user


def check_transition(transitions: Dict[str, Iterable[str]], label: str, current: str, target: str):
    if target not in transitions.get(current, ()):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change {label} status from {current} to {target}"
        )


def forbid(current_user: dict, reason: str):
    logger.warning("Access denied: user=%s role=%s: %s", current_user["id"], current_user["role"], reason)
    raise HTTPException(status_code=403, detail=reason)
