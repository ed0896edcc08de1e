import logging
from fastapi import APIRouter, Depends, HTTPException
from models import AppointmentCreate
from auth import guard, require_permission
from database import insert_row, list_rows, update_row
from permissions import access_scope, has_permission
from routers.common import forbid, get_or_404, get_user_with_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def _is_participant(user: dict, appointment) -> bool:
    return user["id"] in (appointment["patient_id"], appointment["doctor_id"])


def _get_visible(appointment_id: int, current_user: dict) -> dict:
    appointment = get_or_404("appointments", appointment_id, "Appointment")
    scope = access_scope(current_user["permission_names"], "view_all_appointments", "view_own_appointments")
    if scope != "all" and not _is_participant(current_user, appointment):
        forbid(current_user, "You can only access your own appointments")
    return appointment


def _require_scheduled(appointment: dict):
    if appointment["status"] != "scheduled":
        raise HTTPException(
            status_code=400,
            detail=f"Only scheduled appointments can be changed (status is {appointment['status']})"
        )


@router.get("/")
def list_appointments(
    current_user: dict = Depends(guard(permissions=["view_all_appointments", "view_own_appointments"]))
):
    scope = access_scope(current_user["permission_names"], "view_all_appointments", "view_own_appointments")
    if scope == "all":
        return list_rows("appointments")
    return list_rows("appointments", any_of={
        "patient_id": current_user["id"],
        "doctor_id": current_user["id"],
    })


@router.get("/{appointment_id}")
def get_appointment(
    appointment_id: int,
    current_user: dict = Depends(guard(permissions=["view_all_appointments", "view_own_appointments"]))
):
    return _get_visible(appointment_id, current_user)


@router.post("/", status_code=201)
def schedule_appointment(
    appointment: AppointmentCreate,
    current_user: dict = Depends(guard(permissions=["schedule_any_doctor", "schedule_own_appointments"]))
):
    """Book an appointment; without schedule_any_doctor the caller must take part in it"""
    if (not has_permission(current_user["permission_names"], "schedule_any_doctor")
            and not _is_participant(current_user, appointment.model_dump())):
        forbid(current_user, "You can only schedule your own appointments")

    get_user_with_role(appointment.patient_id, "patient", "Patient")
    doctor = get_user_with_role(appointment.doctor_id, "doctor", "Doctor")
    if not doctor["is_active"]:
        raise HTTPException(status_code=400, detail="Doctor account is suspended")

    created = insert_row("appointments", {
        **appointment.model_dump(),
        "status": "scheduled",
        "created_by": current_user["id"],
    })
    logger.info("User %s scheduled appointment %s", current_user["id"], created["id"])
    return created


@router.patch("/{appointment_id}/cancel")
def cancel_appointment(
    appointment_id: int,
    current_user: dict = Depends(guard(permissions=["cancel_any_appointment", "cancel_own_appointments"]))
):
    appointment = get_or_404("appointments", appointment_id, "Appointment")
    if (not has_permission(current_user["permission_names"], "cancel_any_appointment")
            and not _is_participant(current_user, appointment)):
        forbid(current_user, "You can only cancel your own appointments")
    _require_scheduled(appointment)

    logger.info("User %s cancelled appointment %s", current_user["id"], appointment_id)
    return update_row("appointments", appointment_id, {"status": "cancelled"})


@router.patch("/{appointment_id}/complete")
def complete_appointment(
    appointment_id: int,
    current_user: dict = Depends(require_permission("mark_appointment_complete"))
):
    appointment = get_or_404("appointments", appointment_id, "Appointment")
    _require_scheduled(appointment)

    logger.info("User %s completed appointment %s", current_user["id"], appointment_id)
    return update_row("appointments", appointment_id, {"status": "completed"})
