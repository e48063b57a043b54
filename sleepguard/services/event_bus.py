"""Fan-out of live protocol events to any number of subscribers (UI, SSE clients, tests)."""

import asyncio
import logging
from typing import List, Optional, Set

from sleepguard.core.constants import EVENT_SUBSCRIPTION_MAX_PENDING
from .bio_models import ProtocolEvent

logger = logging.getLogger(__name__)

_END = object()


class EventSubscription:
    """One subscriber's ordered view of the event stream. Async-iterable until closed.

    Holds at most max_pending undelivered events; a subscriber that falls
    behind loses the oldest ones, so an undrained subscription stays bounded.
    """

    def __init__(self, bus: "ProtocolEventBus", max_pending: int = EVENT_SUBSCRIPTION_MAX_PENDING):
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")
        self._bus = bus
        # one slot beyond max_pending is kept for the end marker
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending + 1)
        self._max_pending = max_pending
        self._closed = False
        self.dropped = 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _deliver(self, event: ProtocolEvent) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._max_pending:
            self._queue.get_nowait()
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(f"Event subscriber falling behind, {self.dropped} events dropped")
        self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Optional[ProtocolEvent]:
        """Next event; None once the subscription is closed. Raises TimeoutError on timeout."""
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        return None if item is _END else item

    def drain(self) -> List[ProtocolEvent]:
        """Everything delivered so far and not yet consumed, without waiting."""
        events: List[ProtocolEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _END:
                events.append(item)
        return events

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus.unsubscribe(self)
        self._queue.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProtocolEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ProtocolEventBus:
    def __init__(self):
        self._subscriptions: Set[EventSubscription] = set()

    # Used by: NightTerrorProtocol.events()
    def subscribe(self, max_pending: int = EVENT_SUBSCRIPTION_MAX_PENDING) -> EventSubscription:
        subscription = EventSubscription(self, max_pending=max_pending)
        self._subscriptions.add(subscription)
        logger.debug(f"Event subscriber added ({len(self._subscriptions)} connected)")
        return subscription

    # Used by: EventSubscription.close()
    def unsubscribe(self, subscription: EventSubscription) -> None:
        self._subscriptions.discard(subscription)
        logger.debug(f"Event subscriber removed ({len(self._subscriptions)} connected)")

    # Used by: NightTerrorProtocol._emit()
    def publish(self, event: ProtocolEvent) -> None:
        for subscription in list(self._subscriptions):
            try:
                subscription._deliver(event)
            except Exception as e:
                logger.error(f"Failed to deliver {event.type} to subscriber: {e}")

    # Used by: NightTerrorProtocol.aclose()
    def close_all(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
