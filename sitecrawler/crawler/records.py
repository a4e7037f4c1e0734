"""
Records emitted by a crawl and the shared progress counters.
"""

import asyncio
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


FINISHED = "Finished!"
KILLED = "Killed!"
ERROR = "Error!"


@dataclass(frozen=True)
class PageResult:
    """
    One record per processed URL.

    A page that never loaded carries only its url.
    """
    url: str
    title: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class ProgressNotification:
    """Counters at one point of the crawl."""
    processed: int
    sum: int
    queued: int
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class FinishedNotification:
    """Terminal notification, emitted once per crawl."""
    finished: str

    def to_dict(self) -> Dict[str, Any]:
        return {'finished': self.finished}


class CrawlRecord:
    """
    Counters shared by all workers.

    ``sum`` starts at 1 for the seed and grows by every URL accepted into the
    frontier; ``processed`` grows by one per dequeued URL.
    """

    def __init__(self):
        self.processed = 0
        self.sum = 1
        self.last_url: Optional[str] = None
        self._lock = asyncio.Lock()

    async def add_discovered(self, count: int):
        async with self._lock:
            self.sum += count

    async def mark_processed(self, url: str):
        async with self._lock:
            self.processed += 1
            self.last_url = url

    def progress(self, queued: int, url: Optional[str] = None) -> ProgressNotification:
        return ProgressNotification(
            processed=self.processed,
            sum=self.sum,
            queued=queued,
            url=url if url is not None else self.last_url,
        )
