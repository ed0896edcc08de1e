import logging
from fastapi import APIRouter, Depends, HTTPException, Response
from models import DocumentRevoke, DocumentShare, DocumentUpdate, DocumentUpload
from auth import guard, require_permission
from database import (delete_row, get_row, get_user_by_id, insert_row, is_document_shared_with,
                      list_document_shares, list_rows, list_visible_documents, revoke_document_share,
                      share_document, update_row)
from permissions import access_scope
from security import decode_content, file_checksum
from routers.common import forbid, get_user_with_role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])

VIEW_DOCUMENTS = ["view_all_documents", "view_own_documents"]


def _metadata(document: dict) -> dict:
    return {k: v for k, v in document.items() if k != "content"}


def _can_see(document: dict, current_user: dict) -> bool:
    scope = access_scope(current_user["permission_names"], "view_all_documents", "view_own_documents")
    if scope == "all":
        return True
    if scope is None:
        return False
    return (current_user["id"] in (document["patient_id"], document["uploaded_by"])
            or is_document_shared_with(document["id"], current_user["id"]))


def _get_document(document_id: int) -> dict:
    document = get_row("documents", document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def _get_visible(document_id: int, current_user: dict) -> dict:
    document = _get_document(document_id)
    if not _can_see(document, current_user):
        forbid(current_user, "You cannot access this document")
    return document


@router.post("/", status_code=201)
def upload_document(
    upload: DocumentUpload,
    current_user: dict = Depends(require_permission("upload_documents"))
):
    """Store a document for a patient; patients may only upload their own"""
    if current_user["role"] == "patient" and upload.patient_id != current_user["id"]:
        forbid(current_user, "Patients can only upload their own documents")
    get_user_with_role(upload.patient_id, "patient", "Patient")
    try:
        content = decode_content(upload.content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not content:
        raise HTTPException(status_code=400, detail="Document is empty")

    values = upload.model_dump(exclude={"content"})
    created = insert_row("documents", {
        **values,
        "uploaded_by": current_user["id"],
        "size": len(content),
        "checksum": file_checksum(content),
        "content": content,
    })
    logger.info("User %s uploaded document %s for patient %s",
                current_user["id"], created["id"], upload.patient_id)
    return _metadata(created)


@router.get("/")
def list_documents(current_user: dict = Depends(guard(permissions=VIEW_DOCUMENTS))):
    scope = access_scope(current_user["permission_names"], "view_all_documents", "view_own_documents")
    documents = list_rows("documents") if scope == "all" else list_visible_documents(current_user["id"])
    return [_metadata(d) for d in documents]


@router.get("/{document_id}")
def get_document(document_id: int, current_user: dict = Depends(guard(permissions=VIEW_DOCUMENTS))):
    document = _get_visible(document_id, current_user)
    return {**_metadata(document), "shared_with": list_document_shares(document_id)}


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    current_user: dict = Depends(require_permission("download_documents"))
):
    document = _get_visible(document_id, current_user)
    logger.info("User %s downloaded document %s", current_user["id"], document_id)
    return Response(
        content=document["content"],
        media_type=document["mime_type"],
        headers={
            "Content-Disposition": f'attachment; filename="{document["file_name"]}"',
            "X-Checksum-SHA256": document["checksum"],
        },
    )


@router.patch("/{document_id}")
def edit_document(
    document_id: int,
    update: DocumentUpdate,
    current_user: dict = Depends(require_permission("edit_documents"))
):
    _get_visible(document_id, current_user)
    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    logger.info("User %s edited document %s", current_user["id"], document_id)
    return _metadata(update_row("documents", document_id, changes))


@router.delete("/{document_id}", status_code=204)
def delete_document(
    document_id: int,
    current_user: dict = Depends(require_permission("delete_documents"))
):
    _get_visible(document_id, current_user)
    delete_row("documents", document_id)
    logger.info("User %s deleted document %s", current_user["id"], document_id)


@router.post("/{document_id}/share")
def share(
    document_id: int,
    share_request: DocumentShare,
    current_user: dict = Depends(require_permission("share_documents"))
):
    _get_visible(document_id, current_user)
    missing = [user_id for user_id in share_request.user_ids if get_user_by_id(user_id) is None]
    if missing:
        raise HTTPException(status_code=404, detail=f"Users not found: {missing}")
    share_document(document_id, share_request.user_ids, current_user["id"])
    logger.info("User %s shared document %s with %s", current_user["id"], document_id, share_request.user_ids)
    return {"document_id": document_id, "shared_with": list_document_shares(document_id)}


@router.post("/{document_id}/revoke-share")
def revoke_share(
    document_id: int,
    revoke: DocumentRevoke,
    current_user: dict = Depends(require_permission("share_documents"))
):
    _get_visible(document_id, current_user)
    if not revoke_document_share(document_id, revoke.user_id):
        raise HTTPException(status_code=404, detail="Document is not shared with this user")
    logger.info("User %s revoked share of document %s from %s", current_user["id"], document_id, revoke.user_id)
    return {"document_id": document_id, "shared_with": list_document_shares(document_id)}
