"""
Fan-out of crawl progress events to every connected observer.

An observer is anything with ``write(str)``. A write that raises gets that
observer dropped; the rest still receive the event.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol

from shotcrawler.errors import ObserverDeliveryError
from shotcrawler.sse_utils import sse_event

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset(("info", "link", "depth", "screenshot", "error"))


class Observer(Protocol):
    def write(self, message: str) -> None: ...


class EventBroadcaster:
    """Owns one subscriber set. Create one per app (or per test)."""

    def __init__(self):
        self._subscribers: set[Observer] = set()

    def subscribe(self, observer: Observer) -> None:
        self._subscribers.add(observer)

    def unsubscribe(self, observer: Observer) -> None:
        self._subscribers.discard(observer)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def broadcast(self, event_type: str, data) -> str:
        """Send one event to every subscriber. Returns the formatted record."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")

        message = sse_event(event_type, data)
        for observer in list(self._subscribers):
            try:
                observer.write(message)
            except Exception as e:
                logger.warning("[broadcast] Error sending SSE update, dropping client: %s", e)
                self._subscribers.discard(observer)
        return message


class QueueObserver:
    """
    Observer backing one streaming HTTP response.

    ``write`` never blocks the crawl: if the client falls behind and the
    buffer fills, delivery fails and the broadcaster drops it.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 256):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, message: str) -> None:
        if self._closed:
            raise ObserverDeliveryError("Stream already closed")
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull as e:
            self.close()
            raise ObserverDeliveryError("Client is not keeping up with the event stream") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake the reader even if the buffer is full
        while True:
            try:
                self._queue.put_nowait(self._CLOSED)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def stream(self) -> AsyncIterator[str]:
        while True:
            message: Optional[object] = await self._queue.get()
            if message is self._CLOSED:
                return
            yield message
