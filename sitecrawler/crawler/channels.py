"""
Outbound record streams of a crawl.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from .records import KILLED


_END = object()


class RecordChannel:
    """
    Unbounded single-consumer stream of records.

    Producers never block. Iteration ends once the channel is closed and every
    record put before the close has been delivered.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(__name__)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def put(self, record: Any):
        if self._closed:
            self.logger.debug(f"Dropping record on closed {self.name} channel: {record!r}")
            return
        self._queue.put_nowait(record)

    def close(self):
        """Mark end of stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)

    @property
    def closed(self) -> bool:
        return self._closed

    async def get(self) -> Optional[Any]:
        """Next record, or None once the stream has ended."""
        record = await self._queue.get()
        if record is _END:
            # Leave the marker for any later reader
            self._queue.put_nowait(_END)
            return None
        return record

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        while True:
            record = await self.get()
            if record is None:
                return
            yield record


class CrawlStreams:
    """
    What a caller gets back from ``crawl()``.

    ``results`` carries PageResult records, ``notifications`` carries
    ProgressNotification records followed by exactly one FinishedNotification.
    """

    def __init__(self, results: RecordChannel, notifications: RecordChannel,
                 stopper: Optional[Callable[[str], Awaitable[None]]] = None):
        self.results = results
        self.notifications = notifications
        self.reason: Optional[str] = None
        self._stopper = stopper
        self._done = asyncio.Event()

    def mark_finished(self, reason: str):
        self.reason = reason
        self._done.set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    async def wait(self) -> str:
        """Wait until the crawl has terminated and return the terminal reason."""
        await self._done.wait()
        return self.reason

    async def stop(self, reason: str = KILLED):
        """Request termination of the running crawl."""
        if self._stopper is not None:
            await self._stopper(reason)
