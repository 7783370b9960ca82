"""Work queue and worker pool for transcription polling.

Submissions enqueue a job id; a fixed pool of ``asyncio`` workers dequeues
ids and runs the poll loop for each to completion, independent of the
HTTP request that created the job. An id that is already pending or in
flight is refused, so no two pollers ever race on the same job.

Tests drive the queue without workers through :meth:`run_pending`.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from src.services.storage.database import get_session
from src.services.storage.repository import TranscriptionRepository

logger = logging.getLogger(__name__)


class TranscriptionQueue:
    """FIFO of job ids processed by *workers* concurrent tasks.

    Args:
        run_job: Coroutine function executed once per dequeued job id.
        workers: Number of worker tasks started by :meth:`start`.
    """

    def __init__(self, run_job: Callable[[str], Awaitable[object]], workers: int = 4) -> None:
        self._run_job = run_job
        self._workers = max(workers, 1)
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._tracked: set[str] = set()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    def is_tracked(self, job_id: str) -> bool:
        """True while *job_id* is queued or being polled."""
        return job_id in self._tracked

    def enqueue(self, job_id: str) -> bool:
        """Schedule *job_id* for polling (non-blocking).

        Returns:
            False if the job is already queued or in flight.
        """
        if job_id in self._tracked:
            logger.debug("Job %s already scheduled; ignoring duplicate enqueue", job_id)
            return False
        self._tracked.add(job_id)
        self._queue.put_nowait(job_id)
        return True

    def start(self) -> None:
        """Launch the worker tasks."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(index), name=f"transcription-worker-{index}")
            for index in range(self._workers)
        ]
        logger.info("Started %d transcription worker(s)", self._workers)

    async def stop(self) -> None:
        """Cancel the worker tasks.

        Jobs still queued stay ``processing`` in the store and are picked up
        again by :func:`recover_processing_jobs` on the next start.
        """
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Stopped transcription workers (%d job(s) left queued)", self._queue.qsize())

    async def run_pending(self) -> int:
        """Process every queued job in the current task; return how many ran."""
        processed = 0
        while not self._queue.empty():
            job_id = self._queue.get_nowait()
            await self._process(job_id)
            processed += 1
        return processed

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self._queue.get()
            logger.debug("Worker %d picked up job %s", index, job_id)
            await self._process(job_id)

    async def _process(self, job_id: str) -> None:
        try:
            await self._run_job(job_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Polling crashed for job %s", job_id)
        finally:
            self._tracked.discard(job_id)
            self._queue.task_done()


async def recover_processing_jobs(queue: TranscriptionQueue) -> int:
    """Re-enqueue every job still ``processing`` in the store (startup recovery)."""
    async with get_session() as session:
        repo = TranscriptionRepository(session)
        job_ids = await repo.list_processing_ids()
    recovered = sum(1 for job_id in job_ids if queue.enqueue(job_id))
    if recovered:
        logger.info("Recovered %d unfinished transcription job(s)", recovered)
    return recovered
