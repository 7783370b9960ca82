"""
Audio upload and signed media download endpoints.

``POST /api/upload`` stores a blob under ``<userId>/`` and returns a
signed URL that can be submitted for transcription. ``GET /media/...``
serves blobs of the local audio store to holders of a valid signature.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse

from src.api.dependencies import (
    get_app_settings,
    get_audio_store,
    get_current_user,
    require_owner,
)
from src.api.responses import success_response
from src.core.config import Settings
from src.core.exceptions import (
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    UploadTooLargeError,
)
from src.core.models import AuthenticatedUser, UploadResult
from src.services.storage.audio_store import BaseAudioStore, LocalAudioStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["audio"])


@router.post("/api/upload", status_code=201)
async def upload_audio(
    audio: UploadFile = File(...),
    user_id: str = Form(..., alias="userId"),
    user: AuthenticatedUser = Depends(get_current_user),
    store: BaseAudioStore = Depends(get_audio_store),
    settings: Settings = Depends(get_app_settings),
):
    """Store an audio file and return its object path and a signed URL."""
    require_owner(user, user_id)

    content_type = audio.content_type or ""
    if not content_type.startswith("audio/"):
        raise InvalidInputError("Only audio files are allowed")

    data = await audio.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise UploadTooLargeError(settings.max_upload_bytes)
    if not data:
        raise InvalidInputError("Uploaded file is empty")

    file_name = audio.filename or "recording"
    object_path = await store.upload(user_id, file_name, data, content_type)
    audio_url = await store.create_signed_url(object_path, settings.signed_url_expires_in)
    logger.info("User %s uploaded %s (%d bytes)", user_id, object_path, len(data))

    result = UploadResult(object_path=object_path, audio_url=audio_url, file_name=file_name)
    return success_response(
        "Audio uploaded successfully",
        data=result.model_dump(by_alias=True),
        status_code=201,
    )


@router.get("/media/{object_path:path}")
async def download_media(
    object_path: str,
    token: str = Query(...),
    store: BaseAudioStore = Depends(get_audio_store),
):
    """Serve a locally stored blob to the holder of a valid signed URL."""
    if not isinstance(store, LocalAudioStore):
        raise NotFoundError("Media is not served by this instance")
    if not store.verify(object_path, token):
        raise ForbiddenError("Invalid or expired signature")

    path = store.resolve(object_path)
    if not path.is_file():
        raise NotFoundError(f"Audio not found: {object_path}")
    return FileResponse(path)
