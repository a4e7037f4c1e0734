"""
Exception hierarchy for the site crawler.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""
    pass


class ConfigError(CrawlerError):
    """Invalid or missing configuration."""
    pass


class FetchError(CrawlerError):
    """A page could not be fetched (navigation error or timeout)."""

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.message = message


class CapabilityError(CrawlerError):
    """The fetch capability could not be started."""
    pass
