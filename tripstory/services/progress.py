"""Per-trip multicast of progress events to live subscribers.

Delivery is best-effort and nothing is persisted: a subscriber only sees
events published while it is registered. A subscriber whose write fails is
dropped on the spot, so a slow or closed transport never blocks the sender.
"""
import asyncio
import logging
from typing import AsyncIterator, Protocol

from tripstory.config import settings
from tripstory.schemas.events import TripEvent, connected_event, status_event
from tripstory.schemas.status import ProcessingStatus

logger = logging.getLogger(__name__)


class SubscriberGone(Exception):
    """Raised by a subscriber that can no longer accept events."""


class Subscriber(Protocol):
    def send(self, event: TripEvent) -> None: ...


class QueueSubscriber:
    """Subscriber backed by a bounded queue, drained by an SSE response.

    ``send`` never waits: a full queue means the client is not keeping up, and
    the write fails so the bus drops it.
    """

    def __init__(self, maxsize: int | None = None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize or settings.subscriber_queue_size)
        self.closed = False

    def send(self, event: TripEvent) -> None:
        if self.closed:
            raise SubscriberGone("subscriber closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as exc:
            self.close()
            raise SubscriberGone("subscriber queue full") from exc

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass  # the reader stops on the closed flag once it drains

    async def events(self) -> AsyncIterator[TripEvent]:
        while True:
            if self.closed and self._queue.empty():
                return
            event = await self._queue.get()
            if event is None:
                return
            yield event


class ProgressBus:
    """Process-wide registry of subscribers, keyed by trip id."""

    def __init__(self):
        self._subscribers: dict[str, set[Subscriber]] = {}

    def subscribe(self, trip_id: str, subscriber: Subscriber, current_status: ProcessingStatus) -> None:
        """Register a subscriber and greet it with ``connected`` plus the current status."""
        self._subscribers.setdefault(trip_id, set()).add(subscriber)
        for event in (connected_event(trip_id), status_event(current_status)):
            if not self._deliver(trip_id, subscriber, event):
                return
        logger.debug("Subscriber registered for trip %s (%d total)", trip_id, self.subscriber_count(trip_id))

    def unsubscribe(self, trip_id: str, subscriber: Subscriber) -> None:
        subscribers = self._subscribers.get(trip_id)
        if not subscribers:
            return
        subscribers.discard(subscriber)
        if not subscribers:
            del self._subscribers[trip_id]
        logger.debug("Subscriber removed for trip %s", trip_id)

    def publish(self, trip_id: str, event: TripEvent) -> int:
        """Send ``event`` to every subscriber of the trip; returns how many received it."""
        subscribers = self._subscribers.get(trip_id)
        if not subscribers:
            return 0
        delivered = 0
        for subscriber in list(subscribers):
            if self._deliver(trip_id, subscriber, event):
                delivered += 1
        logger.debug("Sent %s event to %d subscriber(s) for trip %s", event.type, delivered, trip_id)
        return delivered

    def subscriber_count(self, trip_id: str) -> int:
        return len(self._subscribers.get(trip_id, ()))

    def close_trip(self, trip_id: str) -> None:
        for subscriber in self._subscribers.pop(trip_id, set()):
            close = getattr(subscriber, "close", None)
            if close is not None:
                close()
        logger.debug("Closed all subscribers for trip %s", trip_id)

    def _deliver(self, trip_id: str, subscriber: Subscriber, event: TripEvent) -> bool:
        try:
            subscriber.send(event)
            return True
        except Exception as e:
            logger.warning("Dropping subscriber for trip %s after failed write: %s", trip_id, e)
            self.unsubscribe(trip_id, subscriber)
            return False


progress_bus = ProgressBus()
