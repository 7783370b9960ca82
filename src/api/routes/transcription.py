"""
Transcription REST endpoints.

Submission, status, history, deletion, per-user statistics, and health.
Routes only resolve the caller and delegate to the submitter or reader;
every response uses the shared envelope.
"""

import logging

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import (
    get_app_settings,
    get_current_user,
    get_optional_user,
    get_reader,
    get_submitter,
    require_owner,
)
from src.api.responses import success_response
from src.core.config import Settings
from src.core.models import AuthenticatedUser, HealthResponse, TranscribeRequest
from src.services.transcription.reader import TranscriptionReader
from src.services.transcription.submitter import JobSubmitter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["transcriptions"])


@router.get("/health")
async def health(settings: Settings = Depends(get_app_settings)):
    """Liveness probe (not rate limited, no auth)."""
    payload = HealthResponse(service=settings.app_name, version=settings.app_version)
    return success_response(
        "Transcription service is healthy",
        data=payload.model_dump(by_alias=True),
    )


@router.post("/transcribe", status_code=202)
async def transcribe(
    body: TranscribeRequest,
    caller: AuthenticatedUser | None = Depends(get_optional_user),
    submitter: JobSubmitter = Depends(get_submitter),
):
    """Start an asynchronous transcription job; returns 202 immediately."""
    result = await submitter.submit(
        user_id=body.user_id,
        audio_url=body.audio_url,
        file_name=body.file_name,
        caller=caller,
    )
    return success_response(
        "Transcription started successfully",
        data=result.model_dump(by_alias=True, mode="json"),
        status_code=202,
    )


@router.get("/history/{user_id}")
async def history(
    user_id: str,
    page: int = Query(1),
    limit: int = Query(10),
    status: str | None = Query(None),
    search: str | None = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    reader: TranscriptionReader = Depends(get_reader),
):
    """Paginated, filterable job history for one user."""
    require_owner(user, user_id)
    data = await reader.get_history(user_id, page=page, limit=limit, status=status, search=search)
    return success_response("Transcription history retrieved successfully", data=data)


@router.get("/stats/{user_id}")
async def stats(
    user_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    reader: TranscriptionReader = Depends(get_reader),
):
    require_owner(user, user_id)
    result = await reader.get_stats(user_id)
    return success_response(
        "Transcription statistics retrieved successfully",
        data=result.model_dump(by_alias=True),
    )


@router.get("/{transcription_id}/status")
async def transcription_status(
    transcription_id: str,
    user_id: str | None = Query(None, alias="userId"),
    user: AuthenticatedUser = Depends(get_current_user),
    reader: TranscriptionReader = Depends(get_reader),
):
    """Current state of one job plus derived display fields."""
    owner_id = user_id or user.id
    require_owner(user, owner_id)
    message, data = await reader.get_status(transcription_id, owner_id)
    return success_response(message, data=data)


@router.delete("/{transcription_id}")
async def delete_transcription(
    transcription_id: str,
    user_id: str | None = Query(None, alias="userId"),
    user: AuthenticatedUser = Depends(get_current_user),
    reader: TranscriptionReader = Depends(get_reader),
):
    """Delete a job and (best effort) its audio blob."""
    owner_id = user_id or user.id
    require_owner(user, owner_id)
    data = await reader.delete_job(transcription_id, owner_id)
    return success_response("Transcription deleted successfully", data=data)
