import logging
import os
import re
import uuid
from typing import Any, Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response

from config import settings
from deps import CurrentUser, get_current_user, get_object_storage, require_student, require_teacher
from errors import Forbidden, NotFound, UnsupportedMediaError, ValidationError
from helpers import format_date
from storage import ObjectStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])

_FOLDER_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def read_upload(file: Optional[UploadFile]) -> bytes:
    """Return the file body after the type and size checks."""
    if file is None or not file.filename:
        raise ValidationError("No file provided")
    if file.content_type not in settings.ALLOWED_UPLOAD_TYPES:
        raise UnsupportedMediaError(f"File type {file.content_type} is not allowed")
    data = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise UnsupportedMediaError(f"File size exceeds the {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit")
    return data


def object_key(prefix: str, filename: str) -> str:
    ext = os.path.splitext(filename)[1].lstrip(".") or "bin"
    return f"{prefix}/{uuid.uuid4()}.{ext}"


def save_upload(storage: ObjectStorage, file: UploadFile, data: bytes, key: str, user: CurrentUser,
                **extra: Any) -> Dict[str, Any]:
    metadata = {"original_name": file.filename, "uploaded_by": user.uid, "uploaded_at": format_date(), **extra}
    try:
        storage.put_object(key, data, file.content_type, metadata)
    except ValueError as e:
        raise ValidationError(str(e))
    logger.info("Stored %s (%d bytes) for %s", key, len(data), user.uid)
    return {
        "url": storage.get_signed_url(key),
        "path": key,
        "filename": file.filename,
        "contentType": file.content_type,
        "size": len(data),
    }


@router.post("/upload", status_code=201)
def upload_file(
    file: Optional[UploadFile] = File(None),
    folder: Optional[str] = Form(None),
    current: CurrentUser = Depends(get_current_user),
    storage: ObjectStorage = Depends(get_object_storage),
):
    data = read_upload(file)
    folder = folder or "uploads"
    if not _FOLDER_RE.match(folder):
        raise ValidationError("Invalid folder name")
    result = save_upload(storage, file, data, object_key(f"{folder}/{current.uid}", file.filename), current)
    return {"success": True, "data": result, "message": "File uploaded successfully"}


@router.post("/upload/assignment-attachment", status_code=201)
def upload_assignment_attachment(
    file: Optional[UploadFile] = File(None),
    assignment_id: Optional[str] = Form(None, alias="assignmentId"),
    current: CurrentUser = Depends(require_teacher),
    storage: ObjectStorage = Depends(get_object_storage),
):
    data = read_upload(file)
    key = object_key(f"assignments/{assignment_id or 'new'}", file.filename)
    result = save_upload(storage, file, data, key, current, type="assignment-attachment")
    return {"success": True, "data": result, "message": "Assignment attachment uploaded successfully"}


@router.post("/upload/submission", status_code=201)
def upload_submission_file(
    file: Optional[UploadFile] = File(None),
    assignment_id: Optional[str] = Form(None, alias="assignmentId"),
    current: CurrentUser = Depends(require_student),
    storage: ObjectStorage = Depends(get_object_storage),
):
    data = read_upload(file)
    if not assignment_id:
        raise ValidationError("Assignment ID is required")
    key = object_key(f"submissions/{assignment_id}/{current.uid}", file.filename)
    result = save_upload(storage, file, data, key, current, type="submission", assignment_id=assignment_id)
    return {"success": True, "data": result, "message": "Submission file uploaded successfully"}


@router.get("/signed-url/{file_path:path}")
def signed_url(file_path: str, current: CurrentUser = Depends(get_current_user),
               storage: ObjectStorage = Depends(get_object_storage)):
    if not storage.exists(file_path):
        raise NotFound("File not found")
    return {"success": True, "data": {"url": storage.get_signed_url(file_path, expires_minutes=60)}}


@router.get("/download/{file_path:path}")
def download(file_path: str, token: str = Query(...), storage: ObjectStorage = Depends(get_object_storage)):
    if not storage.verify_signed_token(file_path, token):
        raise Forbidden("Invalid or expired download link")
    if not storage.exists(file_path):
        raise NotFound("File not found")
    meta = storage.get_metadata(file_path)
    filename = (meta.get("metadata") or {}).get("original_name") or os.path.basename(file_path)
    return Response(
        content=storage.read_object(file_path),
        media_type=meta.get("content_type") or "application/octet-stream",
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(filename)}"},
    )


@router.delete("/{file_path:path}")
def delete_file(file_path: str, current: CurrentUser = Depends(get_current_user),
                storage: ObjectStorage = Depends(get_object_storage)):
    if not storage.exists(file_path):
        raise NotFound("File not found")
    uploaded_by = (storage.get_metadata(file_path).get("metadata") or {}).get("uploaded_by")
    if uploaded_by != current.uid and current.role != "teacher":
        raise Forbidden("You can only delete your own files")
    storage.delete_object(file_path)
    logger.info("Deleted %s by %s", file_path, current.uid)
    return {"success": True, "message": "File deleted successfully"}
