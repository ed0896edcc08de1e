import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException
from models import (PrescriptionCancel, PrescriptionCreate, PrescriptionDispense, PrescriptionRenew,
                    PrescriptionSend, PrescriptionStatusUpdate, PrescriptionUpdate)
from auth import guard, require_permission
from database import get_row, insert_numbered_row, list_rows, update_row
from permissions import access_scope
from routers.common import check_transition, forbid, get_or_404, get_user_with_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prescriptions", tags=["Prescriptions"])

VIEW_PRESCRIPTIONS = ["view_all_prescriptions", "view_assigned_prescriptions", "view_own_prescriptions"]

TRANSITIONS = {
    "draft": ("signed", "cancelled"),
    "signed": ("sent", "cancelled", "expired"),
    "sent": ("dispensed", "partially_dispensed", "cancelled", "expired"),
    "partially_dispensed": ("dispensed",),
}

# Statuses that mean the prescription has been routed to a pharmacy
ASSIGNED_STATUSES = ("sent", "partially_dispensed", "dispensed")

# Targets reachable through the generic status endpoint; signing and sending have their own guards
PHARMACY_STATUSES = ("dispensed", "partially_dispensed", "cancelled", "expired")

RENEWABLE_STATUSES = ("dispensed", "partially_dispensed", "expired")


def _scope(current_user: dict):
    return access_scope(current_user["permission_names"], "view_all_prescriptions",
                        "view_own_prescriptions", "view_assigned_prescriptions")


def _is_visible(prescription: dict, current_user: dict, scope: str) -> bool:
    if scope == "all":
        return True
    if scope == "assigned":
        return prescription["pharmacy_id"] is not None and prescription["status"] in ASSIGNED_STATUSES
    return prescription["patient_id"] == current_user["id"]


def _insert_numbered(values: dict) -> dict:
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    return insert_numbered_row("prescriptions", values, "prescription_number", f"RX-{today}")


def _transition(prescription: dict, target: str, current_user: dict, extra: dict = None) -> dict:
    check_transition(TRANSITIONS, "prescription", prescription["status"], target)
    logger.info("User %s moved prescription %s from %s to %s",
                current_user["id"], prescription["id"], prescription["status"], target)
    return update_row("prescriptions", prescription["id"], {"status": target, **(extra or {})})


@router.post("/", status_code=201)
def create_prescription(
    prescription: PrescriptionCreate,
    current_user: dict = Depends(require_permission("create_prescriptions"))
):
    """Draft a prescription; the caller is the prescribing doctor"""
    get_user_with_role(prescription.patient_id, "patient", "Patient")
    if prescription.consultation_id is not None:
        get_or_404("consultations", prescription.consultation_id, "Consultation")

    created = _insert_numbered({
        **prescription.model_dump(),
        "doctor_id": current_user["id"],
        "status": "draft",
    })
    logger.info("User %s created prescription %s", current_user["id"], created["prescription_number"])
    return created


@router.get("/")
def list_prescriptions(current_user: dict = Depends(guard(permissions=VIEW_PRESCRIPTIONS))):
    scope = _scope(current_user)
    if scope == "own":
        return list_rows("prescriptions", filters={"patient_id": current_user["id"]})
    return [p for p in list_rows("prescriptions") if _is_visible(p, current_user, scope)]


@router.get("/{prescription_id}")
def get_prescription(
    prescription_id: int,
    current_user: dict = Depends(guard(permissions=VIEW_PRESCRIPTIONS))
):
    prescription = get_or_404("prescriptions", prescription_id, "Prescription")
    if not _is_visible(prescription, current_user, _scope(current_user)):
        forbid(current_user, "You cannot access this prescription")
    return prescription


@router.put("/{prescription_id}")
def edit_prescription(
    prescription_id: int,
    update: PrescriptionUpdate,
    current_user: dict = Depends(require_permission("create_prescriptions"))
):
    prescription = get_or_404("prescriptions", prescription_id, "Prescription")
    if prescription["status"] != "draft":
        raise HTTPException(status_code=400, detail="Only draft prescriptions can be edited")

    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    logger.info("User %s edited prescription %s", current_user["id"], prescription_id)
    return update_row("prescriptions", prescription_id, changes)


@router.post("/{prescription_id}/sign")
def sign_prescription(
    prescription_id: int,
    current_user: dict = Depends(require_permission("sign_prescriptions"))
):
    prescription = get_or_404("prescriptions", prescription_id, "Prescription")
    return _transition(prescription, "signed", current_user, {
        "signed_by": current_user["id"],
        "signed_at": datetime.now(timezone.utc).isoformat(),
    })


@router.post("/{prescription_id}/send")
def send_prescription(
    prescription_id: int,
    send: PrescriptionSend,
    current_user: dict = Depends(require_permission("send_prescriptions"))
):
    """Route a signed prescription to an active pharmacy"""
    prescription = get_or_404("prescriptions", prescription_id, "Prescription")
    pharmacy = get_row("pharmacies", send.pharmacy_id)
    if pharmacy is None:
        raise HTTPException(status_code=404, detail="Pharmacy not found")
    if not pharmacy["is_active"] or pharmacy["partnership_status"] != "active":
        raise HTTPException(status_code=400, detail="Pharmacy is not accepting prescriptions")
    return _transition(prescription, "sent", current_user, {"pharmacy_id": send.pharmacy_id})


@router.post("/{prescription_id}/dispense")
def dispense_prescription(
    prescription_id: int,
    dispense: PrescriptionDispense,
    current_user: dict = Depends(require_permission("dispense_prescriptions"))
):
    prescription = get_or_404("prescriptions", prescription_id, "Prescription")
    target = "partially_dispensed" if dispense.partial else "dispensed"
    return _transition(prescription, target, current_user)


@router.patch("/{prescription_id}/status")
def update_prescription_status(
    prescription_id: int,
    update: PrescriptionStatusUpdate,
    current_user: dict = Depends(require_permission("update_prescription_status"))
):
    prescription = get_or_404("prescriptions", prescription_id, "Prescription")
    if update.status not in PHARMACY_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Use the sign or send action to move a prescription to {update.status}"
        )
    return _transition(prescription, update.status, current_user)


@router.post("/{prescription_id}/cancel")
def cancel_prescription(
    prescription_id: int,
    cancel: PrescriptionCancel,
    current_user: dict = Depends(require_permission("create_prescriptions"))
):
    """Withdraw a prescription before it is dispensed"""
    prescription = get_or_404("prescriptions", prescription_id, "Prescription")
    return _transition(prescription, "cancelled", current_user, {"cancellation_reason": cancel.reason})


@router.post("/{prescription_id}/renew", status_code=201)
def renew_prescription(
    prescription_id: int,
    renew: PrescriptionRenew,
    current_user: dict = Depends(require_permission("create_prescriptions"))
):
    """Start a new draft from a dispensed or expired prescription"""
    source = get_or_404("prescriptions", prescription_id, "Prescription")
    if source["status"] not in RENEWABLE_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Only dispensed or expired prescriptions can be renewed (status is {source['status']})"
        )

    medications = [m.model_dump() for m in renew.medications] if renew.medications else source["medications"]
    created = _insert_numbered({
        "patient_id": source["patient_id"],
        "consultation_id": source["consultation_id"],
        "medications": medications,
        "diagnosis": source["diagnosis"],
        "notes": renew.notes if renew.notes is not None else source["notes"],
        "priority": source["priority"],
        "doctor_id": current_user["id"],
        "status": "draft",
        "renewed_from": source["id"],
    })
    logger.info("User %s renewed prescription %s as %s",
                current_user["id"], source["prescription_number"], created["prescription_number"])
    return created
