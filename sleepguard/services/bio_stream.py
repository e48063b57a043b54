"""Sample sources: the stream protocol and an asyncio.Queue-backed channel."""

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol

from .bio_models import BioSample

logger = logging.getLogger(__name__)


class BioStream(Protocol):
    def samples(self) -> AsyncIterator[BioSample]:
        """Push-based, unbounded, not restartable. Ends (or raises) when the provider goes away."""
        ...


class BioStreamClosed(Exception):
    pass


_CLOSED = object()


# Used by: api/night_terror.py (POST /start, POST /samples), tests
class QueueBioStream:
    """Channel fed by any number of producers, drained by one consumer.

    Ordering is arrival order at the queue; backpressure is the producers' concern.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._error: Optional[BaseException] = None

    @property
    def is_closed(self) -> bool:
        return self._closed

    def push(self, sample: BioSample) -> None:
        if self._closed:
            raise BioStreamClosed("Sample stream is closed")
        self._queue.put_nowait(sample)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def fail(self, error: BaseException) -> None:
        """Terminate the stream with an error (e.g. sensor disconnect)."""
        if self._closed:
            return
        self._error = error
        self.close()

    async def samples(self) -> AsyncIterator[BioSample]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                if self._error is not None:
                    raise self._error
                return
            yield item
