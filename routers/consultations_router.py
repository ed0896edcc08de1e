import logging
from fastapi import APIRouter, Depends, HTTPException
from models import ConsultationCreate, ConsultationUpdate
from auth import guard, require_permission
from database import delete_row, insert_row, list_rows, update_row
from permissions import access_scope
from routers.common import forbid, get_or_404, get_user_with_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consultations", tags=["Consultations"])

VIEW_CONSULTATIONS = ["view_all_consultations", "view_own_consultations"]

READ_ONLY_STATUSES = ("archived", "cancelled")


@router.post("/", status_code=201)
def create_consultation(
    consultation: ConsultationCreate,
    current_user: dict = Depends(require_permission("create_consultations"))
):
    """Record a consultation; the caller is recorded as the clinician"""
    get_user_with_role(consultation.patient_id, "patient", "Patient")
    if consultation.appointment_id is not None:
        appointment = get_or_404("appointments", consultation.appointment_id, "Appointment")
        if appointment["patient_id"] != consultation.patient_id:
            raise HTTPException(status_code=400, detail="Appointment belongs to another patient")

    created = insert_row("consultations", {
        **consultation.model_dump(),
        "doctor_id": current_user["id"],
        "status": "draft",
    })
    logger.info("User %s created consultation %s", current_user["id"], created["id"])
    return created


@router.get("/")
def list_consultations(current_user: dict = Depends(guard(permissions=VIEW_CONSULTATIONS))):
    scope = access_scope(current_user["permission_names"], "view_all_consultations", "view_own_consultations")
    if scope == "all":
        return list_rows("consultations")
    return list_rows("consultations", filters={"patient_id": current_user["id"]})


@router.get("/{consultation_id}")
def get_consultation(
    consultation_id: int,
    current_user: dict = Depends(guard(permissions=VIEW_CONSULTATIONS))
):
    consultation = get_or_404("consultations", consultation_id, "Consultation")
    scope = access_scope(current_user["permission_names"], "view_all_consultations", "view_own_consultations")
    if scope != "all" and consultation["patient_id"] != current_user["id"]:
        forbid(current_user, "You can only access your own consultations")
    return consultation


@router.put("/{consultation_id}")
def edit_consultation(
    consultation_id: int,
    update: ConsultationUpdate,
    current_user: dict = Depends(require_permission("edit_consultations"))
):
    consultation = get_or_404("consultations", consultation_id, "Consultation")
    if consultation["status"] in READ_ONLY_STATUSES:
        raise HTTPException(status_code=400, detail=f"{consultation['status'].capitalize()} consultations are read-only")

    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    logger.info("User %s edited consultation %s", current_user["id"], consultation_id)
    return update_row("consultations", consultation_id, changes)


@router.patch("/{consultation_id}/cancel")
def cancel_consultation(
    consultation_id: int,
    current_user: dict = Depends(require_permission("edit_consultations"))
):
    consultation = get_or_404("consultations", consultation_id, "Consultation")
    if consultation["status"] in READ_ONLY_STATUSES:
        raise HTTPException(status_code=400, detail=f"Cannot cancel a consultation that is {consultation['status']}")
    logger.info("User %s cancelled consultation %s", current_user["id"], consultation_id)
    return update_row("consultations", consultation_id, {"status": "cancelled"})


@router.delete("/{consultation_id}", status_code=204)
def delete_consultation(
    consultation_id: int,
    current_user: dict = Depends(require_permission("delete_consultations"))
):
    get_or_404("consultations", consultation_id, "Consultation")
    delete_row("consultations", consultation_id)
    logger.info("User %s deleted consultation %s", current_user["id"], consultation_id)
