"""
CRUD repository for the ``transcriptions`` table.

``TranscriptionRepository`` receives an ``AsyncSession`` and provides all
data-access methods.  It calls ``flush()`` rather than ``commit()`` so
that transaction boundaries are controlled by the caller (typically
:func:`get_session`).

Terminal transitions are conditional updates guarded on
``status = 'processing'``: a row that already reached ``completed`` or
``error`` is never modified again, which also makes a duplicate terminal
write a no-op.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import StorageError, TranscriptionNotFoundError
from src.core.models import TranscriptionStatus
from src.services.storage.models_db import Transcription

logger = logging.getLogger(__name__)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TranscriptionRepository:
    """Data-access layer for transcription jobs.

    All methods use ``flush()`` instead of ``commit()`` so transaction
    boundaries are controlled by the caller (typically ``get_session()``
    context manager which commits on clean exit).

    Args:
        session: An active SQLAlchemy ``AsyncSession``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_transcription(
        self,
        transcription_id: str,
        user_id: str,
        audio_url: str,
        file_name: str = "Untitled",
    ) -> Transcription:
        """Insert a new job row with status *processing*.

        Raises:
            StorageError: If a row with the same id already exists.
        """
        existing = await self._session.get(Transcription, transcription_id)
        if existing is not None:
            raise StorageError(f"Transcription already exists: {transcription_id}")

        transcription = Transcription(
            id=transcription_id,
            user_id=user_id,
            audio_url=audio_url,
            file_name=file_name,
            status=TranscriptionStatus.processing.value,
        )
        self._session.add(transcription)
        await self._session.flush()
        return transcription

    async def mark_completed(
        self,
        transcription_id: str,
        text: str | None,
        confidence: float | None,
        audio_duration: float | None,
        words: list[dict] | None,
    ) -> Transcription | None:
        """Move a processing job to *completed* with all result fields at once.

        Returns:
            The updated row, or ``None`` if the job was missing or already terminal.
        """
        return await self._finish(
            transcription_id,
            status=TranscriptionStatus.completed.value,
            text=text,
            confidence=confidence,
            audio_duration=audio_duration,
            words=words,
        )

    async def mark_failed(self, transcription_id: str, error_message: str) -> Transcription | None:
        """Move a processing job to *error*.

        Returns:
            The updated row, or ``None`` if the job was missing or already terminal.
        """
        return await self._finish(
            transcription_id,
            status=TranscriptionStatus.error.value,
            error_message=error_message,
        )

    async def _finish(self, transcription_id: str, **values: object) -> Transcription | None:
        stmt = (
            update(Transcription)
            .where(
                Transcription.id == transcription_id,
                Transcription.status == TranscriptionStatus.processing.value,
            )
            .values(updated_at=datetime.now(UTC), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            logger.debug("Skipped terminal update for %s (missing or already terminal)", transcription_id)
            return None
        await self._session.flush()
        return await self._reload(transcription_id)

    async def delete_transcription(self, transcription_id: str, user_id: str) -> Transcription:
        """Delete the caller's job row and return the removed instance.

        Raises:
            TranscriptionNotFoundError: If no row matches both id and owner.
        """
        transcription = await self.get_transcription(transcription_id, user_id)
        await self._session.delete(transcription)
        await self._session.flush()
        return transcription

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find(self, transcription_id: str) -> Transcription | None:
        """Return a job by id regardless of owner, or ``None``."""
        return await self._session.get(Transcription, transcription_id)

    async def get_transcription(self, transcription_id: str, user_id: str) -> Transcription:
        """Return a job owned by *user_id* or raise :class:`TranscriptionNotFoundError`."""
        stmt = select(Transcription).where(
            Transcription.id == transcription_id,
            Transcription.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        transcription = result.scalar_one_or_none()
        if transcription is None:
            raise TranscriptionNotFoundError(transcription_id)
        return transcription

    def _filtered(self, stmt, user_id: str, status: str | None, search: str | None):
        stmt = stmt.where(Transcription.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Transcription.status == status)
        if search:
            pattern = f"%{_escape_like(search)}%"
            stmt = stmt.where(
                or_(
                    Transcription.file_name.ilike(pattern, escape="\\"),
                    Transcription.text.ilike(pattern, escape="\\"),
                )
            )
        return stmt

    async def list_transcriptions(
        self,
        user_id: str,
        status: str | None = None,
        search: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[Transcription]:
        """Return one page of a user's jobs, newest first."""
        stmt = self._filtered(select(Transcription), user_id, status, search)
        stmt = (
            stmt.order_by(Transcription.created_at.desc(), Transcription.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(
        self,
        user_id: str,
        status: str | None = None,
        search: str | None = None,
    ) -> dict[str, int]:
        """Return ``{status: count}`` over the whole filtered set."""
        stmt = self._filtered(
            select(Transcription.status, func.count(Transcription.id)),
            user_id,
            status,
            search,
        ).group_by(Transcription.status)
        result = await self._session.execute(stmt)
        return {row_status: count for row_status, count in result.all()}

    async def list_stat_rows(self, user_id: str) -> list[tuple[str, float | None, datetime]]:
        """Return ``(status, audio_duration, created_at)`` for every job of a user."""
        stmt = select(
            Transcription.status,
            Transcription.audio_duration,
            Transcription.created_at,
        ).where(Transcription.user_id == user_id)
        result = await self._session.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def list_processing_ids(self) -> list[str]:
        """Return ids of all jobs not yet terminal, oldest first."""
        stmt = (
            select(Transcription.id)
            .where(Transcription.status == TranscriptionStatus.processing.value)
            .order_by(Transcription.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def _reload(self, transcription_id: str) -> Transcription | None:
        stmt = (
            select(Transcription)
            .where(Transcription.id == transcription_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()
