from __future__ import annotations

import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, File, Request, UploadFile
from loguru import logger

from bikerhub import database
from bikerhub.auth import ensure_owner_or_admin, get_current_user
from bikerhub.config import settings
from bikerhub.errors import NotFoundError, UploadLimitError
from bikerhub.responses import envelope
from bikerhub.schemas import UploadRecord, User

router = APIRouter(prefix="/api/uploads", tags=["uploads"])

UPLOAD_FIELD = "files"


def upload_dir() -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


async def _check_limits(request: Request, files: list[UploadFile]) -> list[bytes]:
    form = await request.form()
    for key, value in form.multi_items():
        if key != UPLOAD_FIELD and not isinstance(value, str):
            raise UploadLimitError("LIMIT_UNEXPECTED_FILE")
    if len(files) > settings.MAX_FILES:
        raise UploadLimitError("LIMIT_FILE_COUNT")

    contents = []
    for upload in files:
        if upload.content_type not in settings.allowed_mime_types:
            raise UploadLimitError("LIMIT_FILE_TYPE")
        data = await upload.read()
        if len(data) > settings.MAX_FILE_SIZE:
            raise UploadLimitError("LIMIT_FILE_SIZE")
        contents.append(data)
    return contents


@router.post("", status_code=201)
async def upload_files(
    request: Request,
    files: list[UploadFile] = File(...),
    user: User = Depends(get_current_user),
):
    contents = await _check_limits(request, files)
    target = upload_dir()

    saved = []
    for upload, data in zip(files, contents):
        suffix = Path(upload.filename or "").suffix.lower()
        filename = f"{uuid.uuid4().hex}{suffix}"
        (target / filename).write_bytes(data)
        record = UploadRecord(
            filename=filename,
            original_name=upload.filename or filename,
            url=f"/uploads/{filename}",
            size=len(data),
            mime_type=upload.content_type,
            owner=user.id,
        )
        doc = await database.create_document(database.UPLOADS, record.to_mongo())
        saved.append(UploadRecord.model_validate(doc).model_dump())

    logger.info("{} stored {} file(s)", user.username, len(saved))
    return envelope("Files uploaded successfully", saved)


@router.get("")
async def list_uploads(user: User = Depends(get_current_user)):
    filter_dict = {} if user.role == "admin" else {"owner": user.id}
    docs = await database.get_documents(database.UPLOADS, filter_dict, limit=200, sort=[("created_at", -1)])
    return envelope("Uploads retrieved", [UploadRecord.model_validate(d).model_dump() for d in docs])


@router.delete("/{upload_id}")
async def delete_upload(upload_id: str, user: User = Depends(get_current_user)):
    doc = await database.get_document(database.UPLOADS, upload_id)
    if not doc:
        raise NotFoundError("Upload not found")
    record = UploadRecord.model_validate(doc)
    ensure_owner_or_admin(user, record.owner)

    (upload_dir() / record.filename).unlink(missing_ok=True)
    await database.delete_document(database.UPLOADS, upload_id)
    return envelope("Upload deleted successfully", {"id": upload_id})
