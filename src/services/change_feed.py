"""In-process realtime change feed for transcription rows.

The job record store publishes one :class:`ChangeEvent` per committed row
change; subscribers receive only the events of the user they subscribed
for. Each subscription has a bounded ``asyncio.Queue`` and never loses an
event silently: when the queue is full the subscription is closed and
marked ``overflowed``. Events already queued are still delivered, then
iteration ends and the consumer must reload its state and subscribe again.

Usage::

    feed = ChangeFeed()
    async with feed.subscribe("user-1") as subscription:
        async for event in subscription:
            ...
"""

import asyncio
import logging
from collections import defaultdict

from src.core.models import ChangeEvent, ChangeEventType, TranscriptionRecord

logger = logging.getLogger(__name__)

_CLOSED = object()


def row_to_dict(row) -> dict:
    """Serialize an ORM ``Transcription`` into a JSON-ready dict."""
    return TranscriptionRecord.model_validate(row).model_dump(mode="json")


class Subscription:
    """One consumer's view of a user's change stream."""

    def __init__(self, feed: "ChangeFeed", user_id: str, max_queue_size: int) -> None:
        self.user_id = user_id
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False
        self._overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def overflowed(self) -> bool:
        return self._overflowed

    def _deliver(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Subscription queue full for user %s at %s event for %s; closing for resync",
                self.user_id,
                event.event_type,
                event.record_id,
            )
            self._overflowed = True
            self._close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        # A full queue has no waiter; __anext__ stops once it drains.
        if not self._queue.full():
            self._queue.put_nowait(_CLOSED)

    async def aclose(self) -> None:
        """Unsubscribe and wake any pending ``__anext__``."""
        self._close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class ChangeFeed:
    """Fan-out of row changes to per-user subscriptions.

    Args:
        max_queue_size: Per-subscription buffer before the subscription overflows.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, set[Subscription]] = defaultdict(set)

    def subscribe(self, user_id: str) -> Subscription:
        subscription = Subscription(self, user_id, self._max_queue_size)
        self._subscribers[user_id].add(subscription)
        logger.debug("Subscribed to changes for user %s", user_id)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.user_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.user_id]

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    def publish(self, event: ChangeEvent) -> int:
        """Deliver *event* to every subscriber of its user; return the fan-out count."""
        subscribers = list(self._subscribers.get(event.user_id, ()))
        for subscription in subscribers:
            subscription._deliver(event)
        return len(subscribers)

    def publish_insert(self, row) -> int:
        new = row_to_dict(row)
        return self.publish(
            ChangeEvent(event_type=ChangeEventType.INSERT, user_id=new["user_id"], new=new)
        )

    def publish_update(self, row, old: dict | None = None) -> int:
        new = row_to_dict(row)
        return self.publish(
            ChangeEvent(event_type=ChangeEventType.UPDATE, user_id=new["user_id"], new=new, old=old)
        )

    def publish_delete(self, old: dict) -> int:
        return self.publish(
            ChangeEvent(event_type=ChangeEventType.DELETE, user_id=old["user_id"], old=old)
        )
