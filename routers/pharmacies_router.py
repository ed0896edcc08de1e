import logging
import sqlite3
from fastapi import APIRouter, Depends, HTTPException
from models import PharmacyCreate, PharmacyUpdate
from auth import require_permission
from database import delete_row, insert_row, list_rows, update_row
from routers.common import get_or_404

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pharmacies", tags=["Pharmacies"])


@router.get("/")
def list_pharmacies(
    active_only: bool = False,
    current_user: dict = Depends(require_permission("view_pharmacies"))
):
    if active_only:
        return list_rows("pharmacies", filters={"is_active": 1})
    return list_rows("pharmacies")


@router.get("/{pharmacy_id}")
def get_pharmacy(
    pharmacy_id: int,
    current_user: dict = Depends(require_permission("view_pharmacies"))
):
    return get_or_404("pharmacies", pharmacy_id, "Pharmacy")


@router.post("/", status_code=201)
def create_pharmacy(
    pharmacy: PharmacyCreate,
    current_user: dict = Depends(require_permission("manage_pharmacies"))
):
    try:
        created = insert_row("pharmacies", pharmacy.model_dump())
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="License number already registered")
    logger.info("User %s created pharmacy %s", current_user["id"], created["id"])
    return created


@router.put("/{pharmacy_id}")
def update_pharmacy(
    pharmacy_id: int,
    update: PharmacyUpdate,
    current_user: dict = Depends(require_permission("manage_pharmacies"))
):
    get_or_404("pharmacies", pharmacy_id, "Pharmacy")
    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    logger.info("User %s updated pharmacy %s", current_user["id"], pharmacy_id)
    return update_row("pharmacies", pharmacy_id, changes)


@router.delete("/{pharmacy_id}", status_code=204)
def delete_pharmacy(
    pharmacy_id: int,
    current_user: dict = Depends(require_permission("manage_pharmacies"))
):
    get_or_404("pharmacies", pharmacy_id, "Pharmacy")
    if list_rows("prescriptions", filters={"pharmacy_id": pharmacy_id}):
        raise HTTPException(status_code=409, detail="Pharmacy has prescriptions; deactivate it instead")
    delete_row("pharmacies", pharmacy_id)
    logger.info("User %s deleted pharmacy %s", current_user["id"], pharmacy_id)
