"""Query side of the job store: status, history, stats, and delete.

Display fields (word count, human-readable duration, confidence
percentage) are derived from persisted columns on every read and never
stored.
"""

import logging
import math

from src.core.exceptions import InvalidInputError
from src.core.models import (
    HistorySummary,
    Pagination,
    TranscriptionRecord,
    TranscriptionStats,
    TranscriptionStatus,
)
from src.core.utils import count_words, round_half_up, utc_now
from src.services.change_feed import ChangeFeed, row_to_dict
from src.services.storage.audio_store import BaseAudioStore
from src.services.storage.database import get_session
from src.services.storage.repository import TranscriptionRepository

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
MAX_SEARCH_LENGTH = 100

_STATUS_MESSAGES = {
    TranscriptionStatus.processing: "Transcription is currently being processed",
    TranscriptionStatus.completed: "Transcription completed successfully",
    TranscriptionStatus.error: "Transcription failed",
}


def format_minutes(seconds: float | None, unit: str = "minutes") -> str:
    if not seconds:
        return "Unknown"
    return f"{round_half_up(seconds / 60)} {unit}"


def format_confidence(confidence: float | None) -> str:
    if confidence is None:
        return "N/A"
    return f"{round_half_up(confidence * 100)}%"


def status_details(record: TranscriptionRecord) -> tuple[str, dict]:
    """Return the status message and the derived fields for one record."""
    message = _STATUS_MESSAGES.get(record.status, "Transcription status unknown")
    if record.status == TranscriptionStatus.processing:
        extra = {"estimatedCompletion": "1-3 minutes remaining", "progress": "In progress"}
    elif record.status == TranscriptionStatus.completed:
        extra = {
            "wordCount": count_words(record.text),
            "duration": format_minutes(record.audio_duration),
            "confidencePercent": format_confidence(record.confidence),
        }
    else:
        extra = {"errorReason": record.error_message or "Unknown error occurred"}
    return message, extra


def history_item(record: TranscriptionRecord) -> dict:
    return {
        **record.model_dump(mode="json"),
        "duration": format_minutes(record.audio_duration, unit="min"),
        "wordCount": count_words(record.text),
        "createdDate": record.created_at.date().isoformat(),
        "statusDisplay": record.status.value.capitalize(),
    }


def validate_history_query(page: int, limit: int, status: str | None, search: str | None) -> None:
    """Raise :class:`InvalidInputError` for out-of-range pagination or filters."""
    if page < 1:
        raise InvalidInputError("Page must be a positive integer")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidInputError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    if status is not None and status not in {s.value for s in TranscriptionStatus}:
        raise InvalidInputError("Status must be one of: processing, completed, error")
    if search is not None and len(search) > MAX_SEARCH_LENGTH:
        raise InvalidInputError(f"Search term must be less than {MAX_SEARCH_LENGTH} characters")


class TranscriptionReader:
    """Read and delete operations scoped to the owning user.

    Args:
        audio_store: Store used for best-effort blob cleanup on delete.
        feed: Change feed notified of deletions (optional).
    """

    def __init__(self, audio_store: BaseAudioStore | None = None, feed: ChangeFeed | None = None) -> None:
        self._audio_store = audio_store
        self._feed = feed

    async def get_status(self, transcription_id: str, user_id: str) -> tuple[str, dict]:
        """Return ``(message, record + derived fields)`` for the caller's job.

        Raises:
            TranscriptionNotFoundError: If the job does not exist for this user.
        """
        async with get_session() as session:
            repo = TranscriptionRepository(session)
            row = await repo.get_transcription(transcription_id, user_id)
            record = TranscriptionRecord.model_validate(row)
        message, extra = status_details(record)
        return message, {**record.model_dump(mode="json"), "statusMessage": message, **extra}

    async def get_history(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
        search: str | None = None,
    ) -> dict:
        """Return one page of history with pagination metadata and status summary."""
        validate_history_query(page, limit, status, search)
        search = search.strip() if search else None

        async with get_session() as session:
            repo = TranscriptionRepository(session)
            rows = await repo.list_transcriptions(
                user_id,
                status=status,
                search=search,
                limit=limit,
                offset=(page - 1) * limit,
            )
            counts = await repo.count_by_status(user_id, status=status, search=search)
            records = [TranscriptionRecord.model_validate(row) for row in rows]

        total = sum(counts.values())
        pagination = Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total_items=total,
            items_per_page=limit,
            has_next_page=page * limit < total,
            has_previous_page=page > 1,
        )
        summary = HistorySummary(
            total_transcriptions=total,
            completed_count=counts.get(TranscriptionStatus.completed.value, 0),
            processing_count=counts.get(TranscriptionStatus.processing.value, 0),
            error_count=counts.get(TranscriptionStatus.error.value, 0),
        )
        return {
            "transcriptions": [history_item(record) for record in records],
            "pagination": pagination.model_dump(by_alias=True),
            "summary": summary.model_dump(by_alias=True),
            "filters": {"status": status or "all", "search": search},
        }

    async def get_stats(self, user_id: str) -> TranscriptionStats:
        """Aggregate counts, total duration, and success rate for a user."""
        async with get_session() as session:
            repo = TranscriptionRepository(session)
            rows = await repo.list_stat_rows(user_id)

        now = utc_now()
        total = len(rows)
        completed = sum(1 for status, _, _ in rows if status == TranscriptionStatus.completed.value)
        total_duration = sum(duration or 0 for _, duration, _ in rows)
        return TranscriptionStats(
            total=total,
            completed=completed,
            processing=sum(
                1 for status, _, _ in rows if status == TranscriptionStatus.processing.value
            ),
            failed=sum(1 for status, _, _ in rows if status == TranscriptionStatus.error.value),
            total_duration=total_duration,
            this_month=sum(
                1
                for _, _, created in rows
                if created.year == now.year and created.month == now.month
            ),
            total_duration_formatted=f"{round_half_up(total_duration / 60)} minutes",
            success_rate=round_half_up(completed / total * 100) if total else 0,
        )

    async def delete_job(self, transcription_id: str, user_id: str) -> dict:
        """Delete the caller's job, then try to delete its audio blob.

        Blob deletion failures are logged and do not fail the operation.

        Raises:
            TranscriptionNotFoundError: If the job does not belong to *user_id*.
        """
        async with get_session() as session:
            repo = TranscriptionRepository(session)
            row = await repo.delete_transcription(transcription_id, user_id)
            old = row_to_dict(row)

        if self._feed is not None:
            self._feed.publish_delete(old)
        logger.info("Deleted transcription %s for user %s", transcription_id, user_id)

        audio_deleted = await self._delete_audio(old["audio_url"], user_id)
        return {"transcriptionId": transcription_id, "audioDeleted": audio_deleted}

    async def _delete_audio(self, audio_url: str, user_id: str) -> bool:
        if self._audio_store is None:
            return False
        object_path = self._audio_store.object_path_from_url(audio_url)
        if object_path is None:
            logger.debug("Audio URL is not managed by the audio store: %s", audio_url)
            return False
        if not object_path.startswith(f"{user_id}/") or ".." in object_path.split("/"):
            logger.warning("Refusing to delete audio %s outside user %s", object_path, user_id)
            return False
        try:
            await self._audio_store.delete(object_path)
        except Exception as exc:
            logger.warning("Failed to delete audio file %s from storage: %s", object_path, exc)
            return False
        return True
