import asyncio
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from sitecrawler.crawler.parser import ContentParser
from sitecrawler.exceptions import CapabilityError, FetchError
from sitecrawler.utils.config import CrawlParams
from sitecrawler.utils.monitoring import CrawlerMonitor


class FakePage:
    """In-memory page handle serving a link graph."""

    def __init__(self, capability: 'FakeCapability'):
        self.capability = capability
        self.current: Optional[str] = None
        self.closed = 0

    async def goto(self, url: str, timeout_ms: float) -> None:
        self.capability.gotos.append((url, timeout_ms))
        self.current = None
        if self.capability.delay:
            await asyncio.sleep(self.capability.delay)
        if url in self.capability.hanging:
            await asyncio.sleep(3600)
        if url in self.capability.failing or url not in self.capability.graph:
            raise FetchError(url, "net::ERR_FAILED")
        self.current = url

    async def extract_metadata(self) -> Dict[str, str]:
        if self.current in self.capability.crashing:
            raise RuntimeError(f"extraction blew up on {self.current}")
        page = self.capability.graph[self.current]
        return {key: page[key] for key in ('title', 'description') if key in page}

    async def extract_links(self, prefix: str) -> List[str]:
        node = self.capability.graph[self.current]
        if 'html' in node:
            return ContentParser(node['html']).extract_links(self.current, prefix)
        links = node.get('links', [])
        return [link for link in links if link.startswith(prefix)]

    async def close(self) -> None:
        self.closed += 1


class FakeCapability:
    """FetchCapability double recording every call it receives."""

    def __init__(self, graph: Dict[str, dict], failing: Iterable[str] = (),
                 hanging: Iterable[str] = (), crashing: Iterable[str] = (),
                 delay: float = 0, fail_start: bool = False):
        self.graph = graph
        self.failing = set(failing)
        self.hanging = set(hanging)
        self.crashing = set(crashing)
        self.delay = delay
        self.fail_start = fail_start

        self.started = 0
        self.closed = 0
        self.pages: List[FakePage] = []
        self.gotos: List[Tuple[str, float]] = []

    async def start(self) -> None:
        self.started += 1
        if self.fail_start:
            raise CapabilityError("browser executable not found")

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed += 1

    def visits(self, url: str) -> int:
        return sum(1 for visited, _ in self.gotos if visited == url)


def page(title: Optional[str] = None, description: Optional[str] = None, links: Iterable[str] = (),
         html: Optional[str] = None) -> dict:
    """A graph node; with ``html`` its links are parsed from markup instead."""
    data = {'links': list(links)}
    if html is not None:
        data['html'] = html
    if title is not None:
        data['title'] = title
    if description is not None:
        data['description'] = description
    return data


def complete_graph(base: str, size: int) -> Dict[str, dict]:
    """
    ``size`` pages, ``base`` being the first; every page links to every page,
    itself included.
    """
    urls = [base] + [f"{base}{index}" for index in range(1, size)]
    return {url: page(title=f"Page {index}", links=urls) for index, url in enumerate(urls)}


async def collect(channel) -> list:
    return [record async for record in channel]


@pytest.fixture
def make_params():
    def _make(url: str = "http://x/", **overrides) -> CrawlParams:
        options = {'interval': 0, 'retry_count': 1, 'base_timeout': 1000, 'backoff_unit': 100}
        options.update(overrides)
        return CrawlParams(url=url, **options)
    return _make


@pytest.fixture
def monitor():
    return CrawlerMonitor()
