"""
Client-side reconciliation of a user's job list with the change feed.

:func:`reduce` is a pure function ``(jobs, event) -> jobs`` applying one
INSERT/UPDATE/DELETE event; :class:`TranscriptionReconciler` loads the
initial history page, applies every event from a subscription, and fires
callbacks when a job reaches a terminal status.

The subscription source is any callable returning an async iterator of
change events for a user id, e.g. ``ChangeFeed.subscribe`` in-process or
a wrapper around the ``/ws/transcriptions/{user_id}`` WebSocket.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from pydantic import ValidationError

from src.client.api_client import TranscriptionAPIClient
from src.core.models import ChangeEvent, ChangeEventType, TranscriptionStatus

logger = logging.getLogger(__name__)

JobCallback = Callable[[dict], None]


def _coerce(event: ChangeEvent | dict) -> ChangeEvent | None:
    if isinstance(event, ChangeEvent):
        return event
    try:
        return ChangeEvent.model_validate(event)
    except ValidationError:
        return None


def reduce(jobs: list[dict], event: ChangeEvent | dict) -> list[dict]:
    """Return a new job list with *event* applied; *jobs* is never mutated.

    INSERT prepends the new row and drops any older copy with the same id,
    UPDATE replaces the matching row in place, DELETE removes by id.
    Unknown or malformed events leave the list unchanged.
    """
    change = _coerce(event)
    if change is None:
        return list(jobs)

    if change.event_type == ChangeEventType.INSERT and change.new:
        job_id = change.new.get("id")
        return [change.new, *(job for job in jobs if job.get("id") != job_id)]

    if change.event_type == ChangeEventType.UPDATE and change.new:
        job_id = change.new.get("id")
        return [change.new if job.get("id") == job_id else job for job in jobs]

    if change.event_type == ChangeEventType.DELETE:
        job_id = change.record_id
        return [job for job in jobs if job.get("id") != job_id]

    return list(jobs)


class TranscriptionReconciler:
    """Keeps one user's job list in sync with the server.

    Args:
        user_id: Owner whose jobs are tracked.
        subscribe: ``subscribe(user_id)`` returning an async iterator of events.
        api: HTTP client for the initial load and for job actions (optional).
        on_completed: Called with the row when a job becomes ``completed``.
        on_failed: Called with the row when a job becomes ``error``.
        page_size: History page size fetched by :meth:`load`.
    """

    def __init__(
        self,
        user_id: str,
        subscribe: Callable[[str], AsyncIterator],
        api: TranscriptionAPIClient | None = None,
        on_completed: JobCallback | None = None,
        on_failed: JobCallback | None = None,
        page_size: int = 50,
    ) -> None:
        self.user_id = user_id
        self._subscribe = subscribe
        self._api = api
        self._on_completed = on_completed
        self._on_failed = on_failed
        self._page_size = page_size
        self._jobs: list[dict] = []
        self._subscription = None
        self._task: asyncio.Task | None = None

    @property
    def jobs(self) -> list[dict]:
        return list(self._jobs)

    def find(self, job_id: str) -> dict | None:
        return next((job for job in self._jobs if job.get("id") == job_id), None)

    async def load(self) -> list[dict]:
        """Replace the local list with the first history page."""
        if self._api is None:
            return self.jobs
        history = await self._api.get_history(self.user_id, page=1, limit=self._page_size)
        self._jobs = list(history.get("transcriptions", []))
        return self.jobs

    def apply(self, event: ChangeEvent | dict) -> list[dict]:
        """Apply one event and fire terminal-status callbacks."""
        change = _coerce(event)
        if change is None:
            logger.debug("Ignoring malformed change event: %r", event)
            return self.jobs
        if change.user_id != self.user_id:
            return self.jobs

        previous = self.find(change.record_id) if change.record_id else None
        self._jobs = reduce(self._jobs, change)

        if change.event_type == ChangeEventType.UPDATE and change.new:
            self._notify(previous, change.new)
        return self.jobs

    def _notify(self, previous: dict | None, current: dict) -> None:
        status = current.get("status")
        try:
            terminal = TranscriptionStatus(status).is_terminal
        except ValueError:
            return
        if not terminal or (previous is not None and previous.get("status") == status):
            return
        if status == TranscriptionStatus.completed and self._on_completed:
            self._on_completed(current)
        elif status == TranscriptionStatus.error and self._on_failed:
            self._on_failed(current)

    async def run(self) -> None:
        """Consume the subscription until it ends or :meth:`close` is called.

        A subscription that ends because it overflowed is replaced by a new
        one and the history is reloaded, so no change is lost.
        """
        while True:
            if self._subscription is None:
                self._subscription = self._subscribe(self.user_id)
            subscription = self._subscription
            async for event in subscription:
                self.apply(event)
            if not getattr(subscription, "overflowed", False):
                return
            logger.warning("Change feed overflowed for user %s; reloading history", self.user_id)
            self._subscription = self._subscribe(self.user_id)
            await self.load()

    async def start_transcription(self, audio_url: str, file_name: str | None = None) -> dict:
        if self._api is None:
            raise RuntimeError("No API client configured")
        return await self._api.start_transcription(self.user_id, audio_url, file_name)

    async def delete_transcription(self, job_id: str) -> dict:
        if self._api is None:
            raise RuntimeError("No API client configured")
        return await self._api.delete_transcription(job_id, self.user_id)

    async def close(self) -> None:
        """Unsubscribe and stop the background consumer, if any."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None and hasattr(subscription, "aclose"):
            await subscription.aclose()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def __aenter__(self) -> "TranscriptionReconciler":
        # Subscribe first: events raised while the history loads stay queued
        # and are replayed through reduce() once the run task starts.
        self._subscription = self._subscribe(self.user_id)
        await self.load()
        self._task = asyncio.create_task(self.run())
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
