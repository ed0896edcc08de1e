import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException
from models import (LabOrderCreate, LabOrderStatusUpdate, LabOrderUpdate, LabReportUpload,
                    LabResultCreate, LabResultUpdate)
from auth import guard, require_permission
from database import insert_numbered_row, insert_row, list_rows, update_row
from permissions import has_any_permission
from routers.common import check_transition, forbid, get_or_404, get_user_with_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lab", tags=["Laboratory"])

VIEW_LAB_ORDERS = ["view_lab_orders", "view_all_lab_orders", "view_own_lab_orders"]

TERMINAL_ORDER_STATUSES = ("reported", "cancelled", "rejected")

ORDER_FLOW = ["ordered", "specimen_collected", "received", "in_progress", "completed", "validated", "reported"]

ORDER_TRANSITIONS = {
    status: (ORDER_FLOW[i + 1], "cancelled", "rejected")
    for i, status in enumerate(ORDER_FLOW[:-1])
}

# Order states in which results may be recorded
RESULT_READY_STATUSES = ("received", "in_progress", "completed")

CRITICAL_FLAGS = ("critical_low", "critical_high")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sees_all_orders(current_user: dict) -> bool:
    return has_any_permission(current_user["permission_names"], ["view_lab_orders", "view_all_lab_orders"])


def _move_order(order: dict, target: str, current_user: dict, extra: dict = None) -> dict:
    check_transition(ORDER_TRANSITIONS, "lab order", order["status"], target)
    logger.info("User %s moved lab order %s from %s to %s",
                current_user["id"], order["id"], order["status"], target)
    return update_row("lab_orders", order["id"], {"status": target, **(extra or {})})


def _has_critical(test_results) -> bool:
    return any(r["flag"] in CRITICAL_FLAGS for r in test_results)


# Orders

@router.post("/orders", status_code=201)
def create_lab_order(
    order: LabOrderCreate,
    current_user: dict = Depends(require_permission("create_lab_orders"))
):
    get_user_with_role(order.patient_id, "patient", "Patient")
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    created = insert_numbered_row("lab_orders", {
        **order.model_dump(),
        "doctor_id": current_user["id"],
        "status": "ordered",
    }, "order_number", f"LAB-{today}")
    logger.info("User %s created lab order %s", current_user["id"], created["order_number"])
    return created


@router.get("/orders")
def list_lab_orders(current_user: dict = Depends(guard(permissions=VIEW_LAB_ORDERS))):
    if _sees_all_orders(current_user):
        return list_rows("lab_orders")
    return list_rows("lab_orders", filters={"patient_id": current_user["id"]})


@router.get("/orders/{order_id}")
def get_lab_order(order_id: int, current_user: dict = Depends(guard(permissions=VIEW_LAB_ORDERS))):
    order = get_or_404("lab_orders", order_id, "Lab order")
    if not _sees_all_orders(current_user) and order["patient_id"] != current_user["id"]:
        forbid(current_user, "You can only access your own lab orders")
    return order


@router.put("/orders/{order_id}")
def edit_lab_order(
    order_id: int,
    update: LabOrderUpdate,
    current_user: dict = Depends(require_permission("edit_lab_orders"))
):
    order = get_or_404("lab_orders", order_id, "Lab order")
    if order["status"] != "ordered":
        raise HTTPException(status_code=400, detail="Lab orders can only be edited before specimen collection")
    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    logger.info("User %s edited lab order %s", current_user["id"], order_id)
    return update_row("lab_orders", order_id, changes)


@router.post("/orders/{order_id}/cancel")
def cancel_lab_order(order_id: int, current_user: dict = Depends(require_permission("cancel_lab_orders"))):
    order = get_or_404("lab_orders", order_id, "Lab order")
    return _move_order(order, "cancelled", current_user)


@router.post("/orders/{order_id}/collect")
def collect_specimen(order_id: int, current_user: dict = Depends(require_permission("collect_specimens"))):
    order = get_or_404("lab_orders", order_id, "Lab order")
    return _move_order(order, "specimen_collected", current_user, {
        "collected_by": current_user["id"],
        "collected_at": _now(),
    })


@router.post("/orders/{order_id}/receive")
def receive_specimen(order_id: int, current_user: dict = Depends(require_permission("receive_specimens"))):
    order = get_or_404("lab_orders", order_id, "Lab order")
    return _move_order(order, "received", current_user)


@router.patch("/orders/{order_id}/status")
def update_lab_order_status(
    order_id: int,
    update: LabOrderStatusUpdate,
    current_user: dict = Depends(require_permission("update_lab_order_status"))
):
    order = get_or_404("lab_orders", order_id, "Lab order")
    return _move_order(order, update.status, current_user)


# Results

@router.post("/results", status_code=201)
def create_lab_result(
    result: LabResultCreate,
    current_user: dict = Depends(guard(permissions=["create_lab_results", "upload_lab_results"]))
):
    """Record results against a received order; the order becomes completed"""
    order = get_or_404("lab_orders", result.lab_order_id, "Lab order")
    if order["status"] not in RESULT_READY_STATUSES:
        raise HTTPException(status_code=400, detail=f"Lab order is {order['status']}; results cannot be recorded")

    test_results = [r.model_dump() for r in result.test_results]
    created = insert_row("lab_results", {
        "lab_order_id": order["id"],
        "patient_id": order["patient_id"],
        "doctor_id": order["doctor_id"],
        "test_results": test_results,
        "report_summary": result.report_summary,
        "has_critical_results": _has_critical(test_results),
        "status": "preliminary",
        "result_date": _now(),
    })
    if order["status"] != "completed":
        update_row("lab_orders", order["id"], {"status": "completed"})
    if created["has_critical_results"]:
        logger.warning("Critical lab results recorded for order %s", order["id"])
    logger.info("User %s recorded lab result %s", current_user["id"], created["id"])
    return created


@router.get("/results")
def list_lab_results(current_user: dict = Depends(require_permission("view_lab_results"))):
    return list_rows("lab_results")


@router.get("/results/{result_id}")
def get_lab_result(result_id: int, current_user: dict = Depends(require_permission("view_lab_results"))):
    return get_or_404("lab_results", result_id, "Lab result")


@router.put("/results/{result_id}")
def edit_lab_result(
    result_id: int,
    update: LabResultUpdate,
    current_user: dict = Depends(require_permission("edit_lab_results"))
):
    """Edit results; editing a final result marks it corrected"""
    lab_result = get_or_404("lab_results", result_id, "Lab result")
    if lab_result["status"] == "cancelled":
        raise HTTPException(status_code=400, detail="Cancelled results cannot be edited")

    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if "test_results" in changes:
        changes["has_critical_results"] = _has_critical(changes["test_results"])
    if lab_result["status"] in ("final", "corrected"):
        changes["status"] = "corrected"
    logger.info("User %s edited lab result %s", current_user["id"], result_id)
    return update_row("lab_results", result_id, changes)


@router.post("/results/{result_id}/validate")
def validate_lab_result(
    result_id: int,
    current_user: dict = Depends(require_permission("validate_lab_results"))
):
    lab_result = get_or_404("lab_results", result_id, "Lab result")
    if lab_result["status"] != "preliminary":
        raise HTTPException(status_code=400, detail="Only preliminary results can be validated")

    order = get_or_404("lab_orders", lab_result["lab_order_id"], "Lab order")
    if order["status"] == "completed":
        update_row("lab_orders", order["id"], {"status": "validated"})
    logger.info("User %s validated lab result %s", current_user["id"], result_id)
    return update_row("lab_results", result_id, {
        "status": "final",
        "validated_by": current_user["id"],
        "validated_at": _now(),
    })


@router.post("/results/{result_id}/report")
def upload_lab_report(
    result_id: int,
    report: LabReportUpload,
    current_user: dict = Depends(require_permission("upload_lab_reports"))
):
    """Attach report file metadata to a result"""
    get_or_404("lab_results", result_id, "Lab result")
    logger.info("User %s attached report to lab result %s", current_user["id"], result_id)
    return update_row("lab_results", result_id, {
        "report_document": {**report.model_dump(), "uploaded_at": _now()},
    })


@router.get("/results/{result_id}/report")
def download_lab_report(
    result_id: int,
    current_user: dict = Depends(require_permission("download_lab_reports"))
):
    lab_result = get_or_404("lab_results", result_id, "Lab result")
    if (not has_any_permission(current_user["permission_names"], ["view_lab_results"])
            and lab_result["patient_id"] != current_user["id"]):
        forbid(current_user, "You can only download your own lab reports")
    if not lab_result["report_document"]:
        raise HTTPException(status_code=404, detail="No report uploaded for this result")
    return lab_result["report_document"]
