"""
Site Crawler

A concurrent breadth-first crawler that collects the title and description
of every page under a seed URL.
"""

__version__ = "1.0.0"
__description__ = "A concurrent same-site crawler that extracts page titles and descriptions"

from .crawler.scheduler import crawl
from .crawler.records import PageResult, ProgressNotification, FinishedNotification
from .utils.config import CrawlParams

__all__ = [
    'crawl', 'CrawlParams',
    'PageResult', 'ProgressNotification', 'FinishedNotification',
]
