"""
Crawl worker: one sequential fetch/extract/enqueue loop over the shared frontier.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from ..exceptions import FetchError
from ..utils.config import CrawlParams
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor
from .channels import RecordChannel
from .fetcher import FetchCapability, PageHandle
from .records import CrawlRecord, PageResult
from .url_frontier import URLFrontier


class WorkerState(Enum):
    """Lifecycle of a worker."""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class CrawlWorker:
    """
    Repeatedly claims a URL from the frontier and processes it.

    The worker is IDLE before its first start and whenever it is parked
    waiting for a peer to discover more URLs, RUNNING while it works on a
    page, and STOPPED once its loop has exited. A stopped worker can be
    started again and keeps the page handle it opened the first time.
    """

    def __init__(self, worker_id: int, params: CrawlParams, fetcher: FetchCapability,
                 frontier: URLFrontier, record: CrawlRecord,
                 results: RecordChannel, notifications: RecordChannel,
                 cancel_event: Optional[asyncio.Event] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        self.worker_id = worker_id
        self.params = params
        self.fetcher = fetcher
        self.frontier = frontier
        self.record = record
        self.results = results
        self.notifications = notifications
        self.cancel_event = cancel_event or asyncio.Event()
        self.monitor = monitor or CrawlerMonitor()
        self.logger = get_crawler_logger(__name__, worker=worker_id)

        self.state = WorkerState.IDLE
        self.page: Optional[PageHandle] = None
        self._active = False
        self._stop_requested = False

    @property
    def attempts(self) -> int:
        """Fetch attempts per page. At least one, even with retry_count 0."""
        return max(1, self.params.retry_count)

    def timeout_for_attempt(self, attempt: int) -> float:
        """Timeout in ms of the zero-based ``attempt``."""
        return self.params.base_timeout + 2 ** attempt * self.params.backoff_unit

    async def start(self):
        """Run until the frontier is drained or the worker is told to stop."""
        if self._active:
            return
        self._active = True
        self._stop_requested = False
        self.logger.debug("Worker started")

        try:
            if self.page is None:
                self.page = await self.fetcher.new_page()

            while not self._stopping():
                self.state = WorkerState.IDLE
                if not await self.frontier.wait_for_work():
                    break
                self.state = WorkerState.RUNNING
                if await self.crawl_one():
                    await self._pause()
        finally:
            self._active = False
            self.state = WorkerState.STOPPED
            self.logger.debug("Worker stopped")

    def stop(self):
        """Ask the loop to exit after the current page."""
        self._stop_requested = True

    async def close(self):
        """Release the page handle."""
        if self.page is not None:
            page, self.page = self.page, None
            await page.close()

    async def crawl_one(self) -> bool:
        """
        Process the next queued URL.

        Emits one PageResult for it and a progress notification before and
        after the fetch. Returns False if nothing was queued.
        """
        url = await self.frontier.pop_next()
        if url is None:
            return False

        self.monitor.worker_busy()
        try:
            self._notify(url)

            if await self._fetch_with_retry(url):
                metadata = await self._extract_metadata(url)
                self.results.put(PageResult(
                    url=url,
                    title=metadata.get('title'),
                    description=metadata.get('description'),
                ))
                await self._enqueue_links(url)
                failed = False
            else:
                self.logger.log_url_event(logging.WARNING, url, f"Giving up after {self.attempts} attempts")
                self.results.put(PageResult(url=url))
                failed = True

            await self.record.mark_processed(url)
            self.monitor.record_page_processed(failed)
        finally:
            await self.frontier.task_done()
            self.monitor.worker_idle()

        self._notify(url)
        return True

    async def _fetch_with_retry(self, url: str) -> bool:
        for attempt in range(self.attempts):
            timeout = self.timeout_for_attempt(attempt)
            try:
                await asyncio.wait_for(self.page.goto(url, timeout), timeout / 1000)
            except (FetchError, asyncio.TimeoutError) as e:
                self.monitor.record_fetch_attempt(succeeded=False)
                self.logger.debug(
                    f"Attempt {attempt + 1}/{self.attempts} failed for {url} "
                    f"(timeout {timeout:.0f}ms): {str(e) or 'timed out'}"
                )
                continue

            self.monitor.record_fetch_attempt(succeeded=True)
            return True
        return False

    async def _extract_metadata(self, url: str) -> dict:
        try:
            return await self.page.extract_metadata() or {}
        except FetchError as e:
            self.logger.warning(f"Could not read metadata of {url}: {e}")
            return {}

    async def _enqueue_links(self, url: str) -> int:
        try:
            links = await self.page.extract_links(self.params.url)
        except FetchError as e:
            self.logger.warning(f"Could not collect links of {url}: {e}")
            return 0

        accepted = 0
        for link in links:
            # Same-site containment: the seed URL must be a string prefix
            if not link.startswith(self.params.url):
                continue
            if await self.frontier.push_if_new(link):
                accepted += 1

        await self.record.add_discovered(accepted)
        self.monitor.record_urls_discovered(accepted)
        self.logger.debug(f"Queued {accepted} new URLs from {url}")
        return accepted

    def _notify(self, url: str):
        queued = self.frontier.size()
        self.monitor.set_queue_size(queued)
        self.notifications.put(self.record.progress(queued, url))

    def _stopping(self) -> bool:
        return self._stop_requested or self.cancel_event.is_set()

    async def _pause(self):
        """Wait the configured interval, cut short by the cancel event."""
        if self.params.interval <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self.cancel_event.wait(), self.params.interval / 1000)
        except asyncio.TimeoutError:
            pass
