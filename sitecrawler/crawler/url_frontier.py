"""
URL Frontier implementation for managing URLs to crawl.
Shared by every worker of a crawl; deduplicates on normalized URL keys.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, Optional, Set

from ..utils.config import CrawlParams


def normalize_url(url: str, params: CrawlParams) -> str:
    """
    Reduce a URL to its dedup key.

    Rules are applied in a fixed order: drop the query string, drop the
    fragment, then strip the trailing slash. Each rule only runs when its
    flag is set. Nothing else (case, scheme, port) is touched.

    A run of trailing slashes is stripped as a whole so that the key of a
    key is the key itself.
    """
    if params.ignore_query_params:
        url = url.split('?', 1)[0]
    if params.ignore_hash:
        url = url.split('#', 1)[0]
    if params.ignore_trailing_slash:
        url = url.rstrip('/')
    return url


class URLFrontier:
    """
    Pending URLs plus the set of every normalized key ever accepted.

    All state changes happen under a single asyncio.Condition. Besides the
    queue the frontier counts URLs that have been popped but not yet marked
    done, which lets idle workers tell "nothing queued right now" apart from
    "crawl finished".
    """

    def __init__(self, params: CrawlParams):
        self.params = params
        self.logger = logging.getLogger(__name__)

        self._queue: Deque[str] = deque()
        self._seen: Set[str] = set()
        self._in_flight = 0
        self._closed = False
        self._condition = asyncio.Condition()

    @classmethod
    def seeded(cls, params: CrawlParams) -> 'URLFrontier':
        """Create a frontier holding the seed URL, its key already marked seen."""
        frontier = cls(params)
        frontier._seen.add(normalize_url(params.url, params))
        frontier._queue.append(params.url)
        return frontier

    async def push_if_new(self, url: str) -> bool:
        """
        Queue a URL unless its normalized key was seen before.
        Returns True if the URL was added.
        """
        key = normalize_url(url, self.params)
        async with self._condition:
            if self._closed or key in self._seen:
                return False
            self._seen.add(key)
            self._queue.append(url)
            self._condition.notify_all()

        self.logger.debug(f"Added URL to frontier: {url}")
        return True

    async def pop_next(self) -> Optional[str]:
        """Take the oldest pending URL, or None when nothing is queued."""
        async with self._condition:
            if self._closed or not self._queue:
                return None
            self._in_flight += 1
            return self._queue.popleft()

    async def task_done(self):
        """Mark one popped URL as fully processed."""
        async with self._condition:
            if self._in_flight <= 0:
                raise ValueError("task_done() called more times than pop_next()")
            self._in_flight -= 1
            self._condition.notify_all()

    async def wait_for_work(self) -> bool:
        """
        Suspend until a URL is queued.

        Returns False instead once the frontier is drained (nothing queued and
        nothing in flight) or closed.
        """
        async with self._condition:
            await self._condition.wait_for(
                lambda: self._closed or self._queue or self._in_flight == 0
            )
            return not self._closed and bool(self._queue)

    async def close(self):
        """Refuse further pushes and pops and wake every waiting worker."""
        async with self._condition:
            self._closed = True
            self._condition.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def size(self) -> int:
        """Number of queued URLs."""
        return len(self._queue)

    def seen_count(self) -> int:
        return len(self._seen)

    def is_drained(self) -> bool:
        return not self._queue and self._in_flight == 0

    def is_seen(self, url: str) -> bool:
        return normalize_url(url, self.params) in self._seen

    def snapshot(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'queued': len(self._queue),
            'seen': len(self._seen),
            'in_flight': self._in_flight,
        }
