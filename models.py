from pydantic import BaseModel, Field
from typing import Annotated, Any, Dict, List, Literal, Optional

# Auth

class LoginRequest(BaseModel):
    username: str
    password: str

class RegisterRequest(BaseModel):
    username: str
    password: str = Field(min_length=6)
    first_name: str
    last_name: str
    email: Optional[str] = None

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = 3600

class PermissionOut(BaseModel):
    name: str
    description: Optional[str] = None
    category: str

class RoleOut(BaseModel):
    name: str
    description: Optional[str] = None
    permissions: List[PermissionOut] = []

class UserOut(BaseModel):
    id: int
    username: str
    role: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True

class CurrentUserOut(UserOut):
    permissions: List[PermissionOut] = []
    disabled_permissions: List[PermissionOut] = []

# User administration

class UserCreate(BaseModel):
    username: str
    role: str
    password: str = Field(min_length=6)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

class RoleUpdate(BaseModel):
    role: str

class StatusUpdate(BaseModel):
    is_active: bool

class DisabledPermissionsUpdate(BaseModel):
    permissions: List[str]

class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)

class NavigationItem(BaseModel):
    id: str
    label: str
    path: str

# Patients

class Allergy(BaseModel):
    allergen: str
    severity: Literal["mild", "moderate", "severe"]
    notes: Optional[str] = None

class MedicalHistoryEntry(BaseModel):
    condition: str
    diagnosed_date: Optional[str] = None
    status: Literal["active", "resolved", "chronic"]
    notes: Optional[str] = None

BloodType = Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "unknown"]

class PatientCreate(BaseModel):
    username: str
    password: str = Field(min_length=6)
    first_name: str
    last_name: str
    email: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[Literal["male", "female", "other", "prefer_not_to_say"]] = None
    blood_type: Optional[BloodType] = None
    assigned_doctor_id: Optional[int] = None

class MedicalHistoryUpdate(BaseModel):
    allergies: Optional[List[Allergy]] = None
    medical_history: Optional[List[MedicalHistoryEntry]] = None
    blood_type: Optional[BloodType] = None

# Appointments

class AppointmentCreate(BaseModel):
    patient_id: int
    doctor_id: int
    date_time: str
    duration: int = Field(default=30, gt=0)
    reason: str
    notes: Optional[str] = None

# Consultations

class Diagnosis(BaseModel):
    code: Optional[str] = None
    description: str
    type: Literal["primary", "secondary", "provisional", "differential"] = "primary"

class ConsultationCreate(BaseModel):
    patient_id: int
    appointment_id: Optional[int] = None
    consultation_date: str
    consultation_type: Literal["initial", "follow_up", "emergency", "routine_checkup", "specialist"]
    chief_complaint: str
    treatment_plan: Optional[str] = None
    vital_signs: Dict[str, Any] = {}
    diagnoses: List[Diagnosis] = []

class ConsultationUpdate(BaseModel):
    chief_complaint: Optional[str] = None
    treatment_plan: Optional[str] = None
    vital_signs: Optional[Dict[str, Any]] = None
    diagnoses: Optional[List[Diagnosis]] = None
    status: Optional[Literal["draft", "completed", "reviewed", "archived"]] = None

# Prescriptions

class Medication(BaseModel):
    medication_name: str
    dosage: str
    form: str = "tablet"
    route: str = "oral"
    frequency: str
    duration_days: int = Field(gt=0)
    quantity: int = Field(gt=0)
    refills: int = 0
    instructions: Optional[str] = None

class PrescriptionCreate(BaseModel):
    patient_id: int
    consultation_id: Optional[int] = None
    medications: List[Medication] = Field(min_length=1)
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    priority: Literal["routine", "urgent", "stat"] = "routine"

class PrescriptionUpdate(BaseModel):
    medications: Optional[Annotated[List[Medication], Field(min_length=1)]] = None
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[Literal["routine", "urgent", "stat"]] = None

class PrescriptionSend(BaseModel):
    pharmacy_id: int

class PrescriptionDispense(BaseModel):
    partial: bool = False

class PrescriptionCancel(BaseModel):
    reason: Optional[str] = None

class PrescriptionRenew(BaseModel):
    medications: Optional[Annotated[List[Medication], Field(min_length=1)]] = None
    notes: Optional[str] = None

class PrescriptionStatusUpdate(BaseModel):
    status: Literal["draft", "signed", "sent", "dispensed", "partially_dispensed", "cancelled", "expired"]

# Pharmacies

class Address(BaseModel):
    street: str
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str

class Contact(BaseModel):
    type: Literal["phone", "mobile", "fax", "email", "emergency"]
    value: str
    is_primary: bool = False

class PharmacyCreate(BaseModel):
    name: str
    license_number: str
    address: Address
    contacts: List[Contact] = []
    type: Literal["community", "hospital", "clinic", "online", "specialty"] = "community"
    is_active: bool = True
    partnership_status: Literal["active", "inactive", "suspended", "pending"] = "active"

class PharmacyUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[Address] = None
    contacts: Optional[List[Contact]] = None
    type: Optional[Literal["community", "hospital", "clinic", "online", "specialty"]] = None
    is_active: Optional[bool] = None
    partnership_status: Optional[Literal["active", "inactive", "suspended", "pending"]] = None

# Laboratory

class LabTest(BaseModel):
    test_code: str
    test_name: str
    category: str = "other"
    specimen_type: str = "blood"
    fasting_required: bool = False

class LabOrderCreate(BaseModel):
    patient_id: int
    consultation_id: Optional[int] = None
    tests: List[LabTest] = Field(min_length=1)
    clinical_notes: Optional[str] = None
    priority: Literal["routine", "urgent", "stat"] = "routine"

class LabOrderUpdate(BaseModel):
    tests: Optional[Annotated[List[LabTest], Field(min_length=1)]] = None
    clinical_notes: Optional[str] = None
    priority: Optional[Literal["routine", "urgent", "stat"]] = None

class LabOrderStatusUpdate(BaseModel):
    status: Literal["ordered", "specimen_collected", "received", "in_progress", "completed",
                    "validated", "reported", "cancelled", "rejected"]

class ResultEntry(BaseModel):
    test_code: str
    test_name: str
    result_value: str
    result_unit: Optional[str] = None
    flag: Literal["normal", "low", "high", "critical_low", "critical_high", "abnormal",
                  "positive", "negative"] = "normal"
    notes: Optional[str] = None

class LabResultCreate(BaseModel):
    lab_order_id: int
    test_results: List[ResultEntry] = Field(min_length=1)
    report_summary: Optional[str] = None

class LabResultUpdate(BaseModel):
    test_results: Optional[Annotated[List[ResultEntry], Field(min_length=1)]] = None
    report_summary: Optional[str] = None

class LabReportUpload(BaseModel):
    file_name: str
    mime_type: str = "application/pdf"
    size: int = Field(gt=0)
    storage_key: str

# Documents

DocumentCategory = Literal[
    "imaging", "lab_report", "prescription", "consultation_note", "discharge_summary",
    "operative_report", "pathology_report", "consent_form", "insurance", "referral",
    "vaccination_record", "medical_certificate", "other",
]

class DocumentUpload(BaseModel):
    title: str
    description: Optional[str] = None
    category: DocumentCategory
    patient_id: int
    file_name: str
    mime_type: str
    content: str  # base64
    tags: List[str] = []
    is_confidential: bool = False

class DocumentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[DocumentCategory] = None
    tags: Optional[List[str]] = None
    is_confidential: Optional[bool] = None

class DocumentShare(BaseModel):
    user_ids: List[int] = Field(min_length=1)

class DocumentRevoke(BaseModel):
    user_id: int
