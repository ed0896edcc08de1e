import logging
import sqlite3
from fastapi import APIRouter, Depends, HTTPException
from models import MedicalHistoryUpdate, PatientCreate
from auth import guard, require_permission
from database import create_user, find_row, get_user_by_id, list_rows, list_users, update_row
from permissions import access_scope
from security import hash_password
from routers.common import forbid, get_user_with_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patients", tags=["Patients"])

VIEW_PATIENTS = ("view_all_patients", "view_assigned_patients", "view_own_record")


def _patient_view(profile: dict) -> dict:
    user = get_user_by_id(profile["user_id"])
    return {
        "id": profile["user_id"],
        "username": user["username"],
        "first_name": user["first_name"],
        "last_name": user["last_name"],
        "email": user["email"],
        "is_active": user["is_active"],
        "date_of_birth": profile["date_of_birth"],
        "gender": profile["gender"],
        "blood_type": profile["blood_type"],
        "allergies": profile["allergies"],
        "medical_history": profile["medical_history"],
        "assigned_doctor_id": profile["assigned_doctor_id"],
    }


def _profile_or_404(patient_id: int) -> dict:
    profile = find_row("patients", user_id=patient_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return profile


def _check_visible(current_user: dict, profile: dict):
    scope = access_scope(current_user["permission_names"], "view_all_patients",
                         "view_own_record", "view_assigned_patients")
    if scope == "all":
        return
    if profile["user_id"] == current_user["id"]:
        return
    if scope == "assigned" and profile["assigned_doctor_id"] == current_user["id"]:
        return
    forbid(current_user, "You can only access your own or assigned patient records")


@router.post("/", status_code=201)
def create_patient(
    patient: PatientCreate,
    current_user: dict = Depends(require_permission("create_patient_records"))
):
    """Create a patient account together with its record"""
    if patient.assigned_doctor_id is not None:
        get_user_with_role(patient.assigned_doctor_id, "doctor", "Doctor")
    try:
        user_id = create_user(
            patient.username,
            hash_password(patient.password),
            "patient",
            patient.first_name,
            patient.last_name,
            patient.email,
        )
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail="Username already exists")

    profile = find_row("patients", user_id=user_id)
    profile = update_row("patients", profile["id"], {
        "date_of_birth": patient.date_of_birth,
        "gender": patient.gender,
        "blood_type": patient.blood_type,
        "assigned_doctor_id": patient.assigned_doctor_id,
    })
    logger.info("User %s created patient %s", current_user["id"], user_id)
    return _patient_view(profile)


@router.get("/")
def list_patients(current_user: dict = Depends(guard(permissions=VIEW_PATIENTS))):
    """Patients visible to the caller"""
    scope = access_scope(current_user["permission_names"], "view_all_patients",
                         "view_own_record", "view_assigned_patients")
    if scope == "all":
        profiles = list_rows("patients")
    elif scope == "assigned":
        profiles = list_rows("patients", any_of={
            "assigned_doctor_id": current_user["id"],
            "user_id": current_user["id"],
        })
    else:
        profiles = list_rows("patients", filters={"user_id": current_user["id"]})
    return [_patient_view(p) for p in profiles]


@router.get("/doctors")
def list_doctors(current_user: dict = Depends(guard(permissions=VIEW_PATIENTS + ("schedule_own_appointments",)))):
    """Doctors that patients can be assigned to or booked with"""
    return [
        {"id": d["id"], "first_name": d["first_name"], "last_name": d["last_name"]}
        for d in list_users("doctor") if d["is_active"]
    ]


@router.get("/{patient_id}")
def get_patient(
    patient_id: int,
    current_user: dict = Depends(guard(permissions=VIEW_PATIENTS))
):
    profile = _profile_or_404(patient_id)
    _check_visible(current_user, profile)
    return _patient_view(profile)


@router.patch("/{patient_id}/medical-history")
def update_medical_history(
    patient_id: int,
    update: MedicalHistoryUpdate,
    current_user: dict = Depends(require_permission("edit_medical_history"))
):
    """Replace allergies, medical history or blood type.

    Holders of edit_medical_history may edit any patient, including ones
    outside their viewing scope.
    """
    profile = _profile_or_404(patient_id)

    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    profile = update_row("patients", profile["id"], changes)
    logger.info("User %s updated medical history of patient %s", current_user["id"], patient_id)
    return _patient_view(profile)
