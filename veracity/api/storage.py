"""
Storage routes for authenticated clients: presigned browser uploads and
server-side puts of base64 payloads.
"""

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from veracity.config import settings
from veracity.core.auth import get_current_user
from veracity.core.dependencies import get_storage
from veracity.core.file_validator import sanitize_filename, sanitize_log_message
from veracity.integrations.storage import StorageConfigError, StorageService
from veracity.schemas.storage import (
    PresignedUrlRequest,
    PresignedUrlResponse,
    UploadFileRequest,
    UploadFileResponse,
)
from veracity.services.detection_service import decode_base64

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/storage", tags=["Storage"])


def _user_key(user_id: str, file_name: str) -> str:
    return f"uploads/{user_id}/{int(time.time() * 1000)}-{sanitize_filename(file_name)}"


def _storage_failure(op: str, e: Exception) -> HTTPException:
    if isinstance(e, StorageConfigError):
        logger.error(f"[STORAGE] {op}: {e}")
        return HTTPException(status_code=500, detail="Storage not configured")
    logger.error(sanitize_log_message(f"[STORAGE] {op} failed: {e}"))
    return HTTPException(status_code=500, detail="Storage request failed. Please try again.")


@router.post("/presigned-url", response_model=PresignedUrlResponse)
async def get_presigned_url(
    body: PresignedUrlRequest,
    user: dict = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    key = _user_key(user["id"], body.file_name)
    try:
        upload = await storage.get_upload_url(key)
    except Exception as e:
        raise _storage_failure("presign", e)
    return {"key": upload.key, "url": upload.url, "fields": upload.fields, "file_url": upload.file_url}


@router.post("/upload-file", response_model=UploadFileResponse)
async def upload_file(
    body: UploadFileRequest,
    user: dict = Depends(get_current_user),
    storage: StorageService = Depends(get_storage),
):
    data = decode_base64(body.file_data)
    if len(data) > settings.presigned_post_max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {settings.presigned_post_max_mb}MB",
        )

    key = _user_key(user["id"], body.file_name)
    try:
        stored = await storage.put(key, data, body.mime_type)
    except Exception as e:
        raise _storage_failure("put", e)
    return {"file_url": stored.url, "key": stored.key}
