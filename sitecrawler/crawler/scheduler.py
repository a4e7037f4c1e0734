"""
Crawl runner that drives the worker pool and the termination sequence.
"""

import asyncio
import inspect
import logging
import signal
from typing import Any, Callable, Dict, List, Optional, Set

from ..exceptions import CapabilityError
from ..utils.config import CrawlParams, FetcherConfig
from ..utils.monitoring import CrawlerMonitor
from .channels import CrawlStreams, RecordChannel
from .fetcher import FetchCapability, create_fetcher
from .records import ERROR, FINISHED, KILLED, CrawlRecord, FinishedNotification
from .url_frontier import URLFrontier
from .worker import CrawlWorker


STOP_SIGNALS = tuple(
    getattr(signal, name) for name in ('SIGINT', 'SIGTERM', 'SIGUSR1', 'SIGUSR2')
    if hasattr(signal, name)
)

ExitCallback = Callable[[str], Any]


class CrawlRunner:
    """
    Runs every worker as an asyncio task and decides when the crawl is over.

    Workers park on the frontier while peers may still discover URLs, so the
    runner only has to join on the worker tasks. A worker that exits while
    URLs are still queued is started again. Whatever ends the crawl (a
    drained frontier, a stop request, a crashed worker) goes through the same
    termination sequence, which runs exactly once.
    """

    def __init__(self, workers: List[CrawlWorker], frontier: URLFrontier,
                 cancel_event: asyncio.Event):
        self.workers = workers
        self.frontier = frontier
        self.cancel_event = cancel_event
        self.logger = logging.getLogger(__name__)

        self.reason: Optional[str] = None
        self._tasks: Dict[int, asyncio.Task] = {}
        self._exit_callbacks: List[ExitCallback] = []
        self._supervisor: Optional[asyncio.Task] = None
        self._finalizing = False
        self._stop_tasks: Set[asyncio.Task] = set()

    def on_exit(self, callback: ExitCallback):
        """Register a callback receiving the termination reason; may be async."""
        self._exit_callbacks.append(callback)

    def start(self) -> asyncio.Task:
        """
        Create every worker task and the supervising task.

        Worker tasks exist as soon as this returns, so a stop arriving before
        the loop runs them cancels them before they open a page.
        """
        if self._supervisor is None:
            if not self._finalizing:
                self._tasks = {worker.worker_id: self._spawn(worker) for worker in self.workers}
            self._supervisor = asyncio.create_task(self._supervise(), name="crawl-runner")
        return self._supervisor

    async def stop(self, reason: str = KILLED):
        """Cancel the crawl: abort in-flight work and run the termination sequence."""
        await self._terminate(reason)

    def request_stop(self, reason: str = KILLED):
        """Synchronous variant of stop() for signal handlers."""
        if self._finalizing:
            return
        task = asyncio.create_task(self.stop(reason))
        self._stop_tasks.add(task)
        task.add_done_callback(self._stop_tasks.discard)

    def _spawn(self, worker: CrawlWorker) -> asyncio.Task:
        return asyncio.create_task(worker.start(), name=f"crawl-worker-{worker.worker_id}")

    async def _supervise(self):
        if self._finalizing:
            return
        self.logger.info(f"Started crawling with {len(self.workers)} workers")

        while not self.cancel_event.is_set():
            running = [task for task in self._tasks.values() if not task.done()]
            if not running:
                break

            done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
            if self.cancel_event.is_set():
                return

            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    self.logger.error(f"Worker task {task.get_name()} crashed", exc_info=task.exception())
                    await self._terminate(ERROR)
                    return

            # A worker that was stopped individually leaves work behind
            if self.frontier.size():
                for worker in self.workers:
                    if self._tasks[worker.worker_id].done():
                        self.logger.debug(f"Restarting worker {worker.worker_id}")
                        self._tasks[worker.worker_id] = self._spawn(worker)

        if not self.cancel_event.is_set():
            await self._terminate(FINISHED)

    async def _terminate(self, reason: str):
        if self._finalizing:
            return
        self._finalizing = True
        self.reason = reason
        self.logger.info(f"Terminating crawl: {reason}")

        self.cancel_event.set()
        await self.frontier.close()

        current = asyncio.current_task()
        pending = [task for task in self._tasks.values() if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        for callback in self._exit_callbacks:
            try:
                outcome = callback(reason)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                self.logger.exception("Exit callback failed")


def _install_signal_handlers(runner: CrawlRunner) -> List[int]:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, runner.request_stop, KILLED)
        except (NotImplementedError, RuntimeError):
            # No signal support here (Windows, or not the main thread)
            continue
        installed.append(sig)
    return installed


async def crawl(params: CrawlParams, fetcher: Optional[FetchCapability] = None, *,
                fetcher_config: Optional[FetcherConfig] = None,
                monitor: Optional[CrawlerMonitor] = None,
                handle_signals: bool = True) -> CrawlStreams:
    """
    Start crawling from ``params.url`` and return the result and notification streams.

    The crawl runs in the background on the current event loop. Read
    ``streams.notifications`` until a FinishedNotification arrives, or await
    ``streams.wait()``.

    Raises:
        CapabilityError: if the fetch capability cannot be started. No
            worker is launched in that case.
    """
    logger = logging.getLogger(__name__)
    fetcher = fetcher or create_fetcher(fetcher_config)
    monitor = monitor or CrawlerMonitor()

    try:
        await fetcher.start()
    except CapabilityError:
        raise
    except Exception as e:
        raise CapabilityError(f"Failed to start fetch capability: {e}") from e

    frontier = URLFrontier.seeded(params)
    record = CrawlRecord()
    results = RecordChannel('results')
    notifications = RecordChannel('notifications')
    cancel_event = asyncio.Event()

    workers = [
        CrawlWorker(worker_id, params, fetcher, frontier, record, results, notifications,
                    cancel_event=cancel_event, monitor=monitor)
        for worker_id in range(params.connections)
    ]
    runner = CrawlRunner(workers, frontier, cancel_event)
    streams = CrawlStreams(results, notifications, stopper=runner.stop)

    installed_signals = _install_signal_handlers(runner) if handle_signals else []

    def emit_finished(reason: str):
        notifications.put(FinishedNotification(finished=reason))
        logger.info(
            f"Crawl ended ({reason}): processed={record.processed}, sum={record.sum}, "
            f"queued={frontier.size()}"
        )

    async def release_fetcher(reason: str):
        for worker in workers:
            await worker.close()
        await fetcher.close()

    def end_streams(reason: str):
        loop = asyncio.get_running_loop()
        for sig in installed_signals:
            loop.remove_signal_handler(sig)
        results.close()
        notifications.close()
        streams.mark_finished(reason)

    runner.on_exit(emit_finished)
    runner.on_exit(release_fetcher)
    runner.on_exit(end_streams)

    logger.info(f"Crawling {params.url} with {params.connections} connection(s)")
    runner.start()
    return streams
