"""
Page fetch capabilities.

The scheduler only sees two small interfaces: a FetchCapability shared by the
whole crawl, and one PageHandle per worker drawn from it. Two capabilities are
provided: a headless Chromium driven by Playwright, which renders scripts the
way a visitor's browser would, and a plain aiohttp client for static sites.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Protocol

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from ..exceptions import CapabilityError, FetchError
from ..utils.config import FetcherConfig
from .parser import ContentParser


# Evaluated inside the page
_METADATA_SCRIPT = """() => {
    const result = {};
    const title = document.querySelector("title");
    const meta = document.querySelector("meta[name=description]");
    if (title) result.title = (title.textContent || "").trim();
    if (meta) result.description = (meta.getAttribute("content") || "").trim();
    return result;
}"""

_LINKS_SCRIPT = """(prefix) => Array.from(document.querySelectorAll("a"), el => el.href)
    .filter(href => typeof href === "string" && href.startsWith(prefix))"""


class PageHandle(Protocol):
    """A single tab/connection owned by one worker."""

    async def goto(self, url: str, timeout_ms: float) -> None:
        """Load ``url``; raise FetchError on navigation failure or timeout."""
        ...

    async def extract_metadata(self) -> Dict[str, str]:
        ...

    async def extract_links(self, prefix: str) -> List[str]:
        ...

    async def close(self) -> None:
        ...


class FetchCapability(Protocol):
    """Process-wide fetch session shared by every worker of a crawl."""

    async def start(self) -> None:
        ...

    async def new_page(self) -> PageHandle:
        ...

    async def close(self) -> None:
        ...


class BrowserPage:
    """PageHandle backed by a Playwright page."""

    def __init__(self, page: Page, wait_until: str):
        self._page = page
        self._wait_until = wait_until

    async def goto(self, url: str, timeout_ms: float) -> None:
        try:
            await self._page.goto(url, timeout=timeout_ms, wait_until=self._wait_until)
        except PlaywrightError as e:
            raise FetchError(url, e.message) from e

    async def extract_metadata(self) -> Dict[str, str]:
        try:
            return await self._page.evaluate(_METADATA_SCRIPT)
        except PlaywrightError as e:
            raise FetchError(self._page.url, f"metadata extraction failed: {e.message}") from e

    async def extract_links(self, prefix: str) -> List[str]:
        try:
            return await self._page.evaluate(_LINKS_SCRIPT, prefix)
        except PlaywrightError as e:
            raise FetchError(self._page.url, f"link extraction failed: {e.message}") from e

    async def close(self) -> None:
        try:
            await self._page.close()
        except PlaywrightError:
            # The browser may already be gone during shutdown
            pass


class BrowserFetcher:
    """
    Headless Chromium shared by all workers; each worker gets its own page.
    """

    def __init__(self, config: Optional[FetcherConfig] = None):
        self.config = config or FetcherConfig()
        self.logger = logging.getLogger(__name__)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        """Launch the browser."""
        if self._browser is not None:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=list(self.config.launch_args),
            )
            self._context = await self._browser.new_context(user_agent=self.config.user_agent)
        except PlaywrightError as e:
            await self.close()
            raise CapabilityError(f"Failed to launch browser: {e.message}") from e
        self.logger.info("Browser session started")

    async def new_page(self) -> BrowserPage:
        if self._context is None:
            raise CapabilityError("Browser session is not started")
        page = await self._context.new_page()
        return BrowserPage(page, self.config.wait_until)

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        browser, playwright = self._browser, self._playwright
        self._browser = self._context = self._playwright = None

        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                self.logger.warning(f"Error closing browser: {e.message}")
        if playwright is not None:
            await playwright.stop()
            self.logger.info("Browser session closed")


class HttpPage:
    """PageHandle that downloads HTML without rendering it."""

    def __init__(self, session: ClientSession):
        self._session = session
        self._url: Optional[str] = None
        self._parser: Optional[ContentParser] = None

    async def goto(self, url: str, timeout_ms: float) -> None:
        self._url = None
        self._parser = None
        try:
            async with self._session.get(url, timeout=ClientTimeout(total=timeout_ms / 1000)) as response:
                content_type = response.headers.get('content-type', '').lower()
                html = await response.text(errors='replace') if 'html' in content_type else ''
                final_url = str(response.url)
        except asyncio.TimeoutError as e:
            raise FetchError(url, f"timeout after {timeout_ms:.0f}ms") from e
        except ClientError as e:
            raise FetchError(url, f"client error: {e}") from e

        self._url = final_url
        self._parser = ContentParser(html)

    async def extract_metadata(self) -> Dict[str, str]:
        if self._parser is None:
            return {}
        return self._parser.extract_metadata()

    async def extract_links(self, prefix: str) -> List[str]:
        if self._parser is None:
            return []
        return self._parser.extract_links(self._url, prefix)

    async def close(self) -> None:
        self._parser = None


class HttpFetcher:
    """
    aiohttp session shared by all workers.
    """

    def __init__(self, config: Optional[FetcherConfig] = None):
        self.config = config or FetcherConfig(backend='http')
        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self) -> None:
        """Initialize the HTTP session."""
        if self.session is not None:
            return
        headers = {'User-Agent': self.config.user_agent} if self.config.user_agent else None
        self.session = aiohttp.ClientSession(headers=headers)
        self.logger.info("HTTP session started")

    async def new_page(self) -> HttpPage:
        if self.session is None:
            raise CapabilityError("HTTP session is not started")
        return HttpPage(self.session)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("HTTP session closed")


def create_fetcher(config: Optional[FetcherConfig] = None) -> FetchCapability:
    """Build the fetch capability selected by ``config.backend``."""
    config = config or FetcherConfig()
    if config.backend == 'browser':
        return BrowserFetcher(config)
    if config.backend == 'http':
        return HttpFetcher(config)
    raise CapabilityError(f"Unknown fetcher backend: {config.backend}")
