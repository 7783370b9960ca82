"""Background poll loop driving one job to a terminal state.

Each :class:`JobPoller` run owns exactly one job id. It waits one interval,
asks the provider for the job's state, and stops at the first terminal
answer, at the attempt ceiling, or at the first communication fault. It
also stops without asking the provider once the row has been deleted or
finished elsewhere:

    processing ──completed──▶ completed
        │
        ├──provider error / fault / ceiling──▶ error

Every terminal write is a guarded update (see
:meth:`TranscriptionRepository.mark_completed`), and a change event is
published only when the row actually changed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from src.core.exceptions import ProviderTimeoutError
from src.core.models import ProviderJob, ProviderJobStatus, TranscriptionStatus
from src.services.change_feed import ChangeFeed, row_to_dict
from src.services.storage.database import get_session
from src.services.storage.repository import TranscriptionRepository
from src.services.transcription.base import BaseTranscriptionProvider

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = ProviderTimeoutError().detail


@dataclass
class PollOutcome:
    """Final state reached by one poll run (``status`` is None if the row was deleted)."""

    job_id: str
    status: TranscriptionStatus | None
    attempts: int
    error_message: str | None = None


class JobPoller:
    """Polls the provider for one job until it finishes.

    Args:
        provider: Transcription provider to query.
        feed: Change feed to publish row updates on (optional).
        interval: Seconds to wait before each attempt (default 5.0).
        max_attempts: Attempt ceiling before the job is failed as timed out.
        sleep: Awaitable sleep used between attempts (injectable for tests).
    """

    def __init__(
        self,
        provider: BaseTranscriptionProvider,
        feed: ChangeFeed | None = None,
        interval: float = 5.0,
        max_attempts: int = 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._provider = provider
        self._feed = feed
        self._interval = interval
        self._max_attempts = max_attempts
        self._sleep = sleep

    async def poll(self, job_id: str) -> PollOutcome:
        """Run the poll loop for *job_id* to completion."""
        attempts = 0
        try:
            while attempts < self._max_attempts:
                await self._sleep(self._interval)
                current = await self._current_status(job_id)
                if current is None:
                    logger.info("Transcription %s was deleted; stopped polling", job_id)
                    return PollOutcome(job_id, None, attempts)
                if current.is_terminal:
                    return PollOutcome(job_id, current, attempts)

                job = await self._provider.get_job(job_id)
                attempts += 1

                if job.status == ProviderJobStatus.completed:
                    await self._complete(job_id, job)
                    logger.info("Transcription %s completed after %d attempt(s)", job_id, attempts)
                    return PollOutcome(job_id, TranscriptionStatus.completed, attempts)

                if job.status == ProviderJobStatus.error:
                    message = job.error or "Transcription failed"
                    await self._fail(job_id, message)
                    logger.error("Transcription %s failed: %s", job_id, message)
                    return PollOutcome(job_id, TranscriptionStatus.error, attempts, message)

                logger.debug(
                    "Transcription %s still %s (attempt %d/%d)",
                    job_id,
                    job.status,
                    attempts,
                    self._max_attempts,
                )
        except Exception as exc:
            logger.exception("Background processing error for %s", job_id)
            message = str(exc) or exc.__class__.__name__
            await self._fail(job_id, message)
            return PollOutcome(job_id, TranscriptionStatus.error, attempts, message)

        logger.warning("Transcription %s timed out after %d attempts", job_id, attempts)
        await self._fail(job_id, TIMEOUT_MESSAGE)
        return PollOutcome(job_id, TranscriptionStatus.error, attempts, TIMEOUT_MESSAGE)

    async def _complete(self, job_id: str, job: ProviderJob) -> None:
        async with get_session() as session:
            repo = TranscriptionRepository(session)
            old = await self._snapshot(repo, job_id)
            row = await repo.mark_completed(
                job_id,
                text=job.text,
                confidence=job.confidence,
                audio_duration=job.audio_duration,
                words=job.words,
            )
        self._publish(row, old)

    async def _fail(self, job_id: str, error_message: str) -> None:
        async with get_session() as session:
            repo = TranscriptionRepository(session)
            old = await self._snapshot(repo, job_id)
            row = await repo.mark_failed(job_id, error_message)
        self._publish(row, old)

    @staticmethod
    async def _current_status(job_id: str) -> TranscriptionStatus | None:
        async with get_session() as session:
            row = await TranscriptionRepository(session).find(job_id)
        return TranscriptionStatus(row.status) if row is not None else None

    @staticmethod
    async def _snapshot(repo: TranscriptionRepository, job_id: str) -> dict | None:
        row = await repo.find(job_id)
        return row_to_dict(row) if row is not None else None

    def _publish(self, row, old: dict | None) -> None:
        if row is None:
            return
        if self._feed is not None:
            self._feed.publish_update(row, old=old)
