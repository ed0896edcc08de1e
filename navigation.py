"""Sidebar entries and their visibility rules."""

from typing import Dict, List, Sequence
from permissions import has_any_permission, has_permission

# ``permission`` is a single requirement, ``permissions`` means any of them
SIDEBAR: List[Dict] = [
    {"id": "dashboard", "label": "Dashboard", "path": "/dashboard"},
    {"id": "patients", "label": "Patients", "path": "/patients",
     "permissions": ["view_all_patients", "view_assigned_patients"]},
    {"id": "appointments", "label": "Appointments", "path": "/appointments",
     "permissions": ["view_all_appointments", "view_own_appointments"]},
    {"id": "consultations", "label": "Consultations", "path": "/consultations",
     "permission": "view_all_consultations"},
    {"id": "prescriptions", "label": "Prescriptions", "path": "/prescriptions",
     "permission": "view_all_prescriptions"},
    {"id": "pharmacies", "label": "Pharmacies", "path": "/pharmacies",
     "permission": "view_pharmacies"},
    {"id": "lab-orders", "label": "Lab Orders", "path": "/lab/orders",
     "permission": "view_lab_orders"},
    {"id": "lab-results", "label": "Lab Results", "path": "/lab/results",
     "permission": "view_lab_results"},
    {"id": "documents", "label": "Documents", "path": "/documents",
     "permissions": ["view_all_documents", "view_own_documents"]},
    {"id": "user-management", "label": "User Management", "path": "/admin/users",
     "permission": "create_users"},
    {"id": "create-staff", "label": "Create Staff", "path": "/admin/staff/create",
     "permission": "create_users"},
]


def is_visible(item: Dict, permission_names: Sequence[str]) -> bool:
    if item.get("permission") and not has_permission(permission_names, item["permission"]):
        return False
    if item.get("permissions") and not has_any_permission(permission_names, item["permissions"]):
        return False
    return True


def visible_items(permission_names: Sequence[str]) -> List[Dict]:
    return [
        {"id": item["id"], "label": item["label"], "path": item["path"]}
        for item in SIDEBAR
        if is_visible(item, permission_names)
    ]
