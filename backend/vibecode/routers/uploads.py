from fastapi import APIRouter, Depends, HTTPException
from ..auth import CurrentUser, require_not_banned
from ..errors import ApiError
from ..schemas import PresignIn, PresignOut
from ..services.storage import (
    ALLOWED_CONTENT_TYPES,
    MAX_UPLOAD_BYTES,
    StorageNotConfigured,
    StorageService,
    UploadRejected,
    get_storage,
)

router = APIRouter(prefix="/uploads", tags=["uploads"])


# Presigned PUT URL; the browser uploads straight to object storage
@router.post("/presign", response_model=PresignOut)
async def presign(payload: PresignIn, me: CurrentUser = Depends(require_not_banned), storage: StorageService = Depends(get_storage)):
    try:
        upload = storage.presign_upload(me.user_id, payload.fileName, payload.contentType, payload.fileSize)
    except UploadRejected as exc:
        raise ApiError(400, str(exc), extra={"allowedTypes": ALLOWED_CONTENT_TYPES, "maxSize": MAX_UPLOAD_BYTES})
    except StorageNotConfigured:
        raise HTTPException(status_code=503, detail="Uploads are not configured")

    return PresignOut(uploadUrl=upload.upload_url, fileUrl=upload.file_url, key=upload.key, expiresIn=upload.expires_in)
