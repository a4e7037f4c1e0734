"""
Web crawler core components.
"""

from .url_frontier import URLFrontier, normalize_url
from .fetcher import BrowserFetcher, HttpFetcher, FetchCapability, PageHandle, create_fetcher
from .parser import ContentParser
from .worker import CrawlWorker, WorkerState
from .scheduler import CrawlRunner, crawl

__all__ = [
    'URLFrontier', 'normalize_url',
    'BrowserFetcher', 'HttpFetcher', 'FetchCapability', 'PageHandle', 'create_fetcher',
    'ContentParser',
    'CrawlWorker', 'WorkerState',
    'CrawlRunner', 'crawl'
]
