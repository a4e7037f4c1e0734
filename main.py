#!/usr/bin/env python3
"""
Main entry point for the site crawler.
"""

import asyncio
import argparse
import logging
import sys
from typing import Optional

from sitecrawler import __version__
from sitecrawler.crawler.channels import RecordChannel
from sitecrawler.crawler.records import ERROR, FINISHED, KILLED, FinishedNotification
from sitecrawler.crawler.scheduler import crawl
from sitecrawler.exceptions import CapabilityError, CrawlerError
from sitecrawler.storage.writers import FORMATS, create_writer, drain_results
from sitecrawler.utils.config import BACKENDS, Config, CrawlParams, load_config
from sitecrawler.utils.logger import setup_logging
from sitecrawler.utils.monitoring import CrawlerMonitor


EXIT_CODES = {
    FINISHED: 0,
    KILLED: 130,
    ERROR: 1,
}


class CrawlerApp:
    """Main application class for the site crawler."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.written = 0

    def load_settings(self, args: argparse.Namespace) -> Config:
        """Read the optional YAML file and apply command-line overrides."""
        config = load_config(args.config) if args.config else Config()
        if args.backend:
            config.fetcher.backend = args.backend
        if args.verbose:
            config.logging.level = 'DEBUG'
        return config

    def crawl_params(self, config: Config, args: argparse.Namespace) -> CrawlParams:
        return config.crawl_params(
            url=args.url,
            interval=args.interval,
            connections=args.connections,
            retry_count=args.retry,
            ignore_trailing_slash=args.ignore_trailing_slash,
            ignore_query_params=args.ignore_query_params,
            ignore_hash=args.ignore_hash,
        )

    async def run(self, args: argparse.Namespace) -> int:
        """Run one crawl and write its results. Returns the process exit code."""
        config = self.load_settings(args)
        setup_logging(config.logging)
        params = self.crawl_params(config, args)
        monitor = CrawlerMonitor.from_config(config.monitoring)

        self.logger.info("=== SITE CRAWLER STARTING ===")
        self.logger.info(f"Seed URL: {params.url}")
        self.logger.info(f"Connections: {params.connections}")
        self.logger.info(f"Interval: {params.interval}ms")
        self.logger.info(f"Retry count: {params.retry_count}")
        self.logger.info(f"Fetcher backend: {config.fetcher.backend}")

        async with create_writer(args.out, args.format) as writer:
            try:
                streams = await crawl(params, fetcher_config=config.fetcher, monitor=monitor)
            except CapabilityError as e:
                self.logger.error(f"Cannot start crawling: {e}")
                return 1

            try:
                self.written, reason = await asyncio.gather(
                    drain_results(streams.results, writer),
                    self.report_progress(streams.notifications),
                )
            except Exception:
                await streams.stop(ERROR)
                raise

        self.logger.info(f"Summary: {monitor.get_summary()}")
        self.logger.info(f"=== SITE CRAWLER FINISHED ({reason}, {self.written} results) ===")
        return EXIT_CODES.get(reason, 1)

    async def report_progress(self, notifications: RecordChannel) -> Optional[str]:
        """Log progress notifications; returns the terminal reason."""
        reason = None
        async for notification in notifications:
            if isinstance(notification, FinishedNotification):
                reason = notification.finished
                continue
            self.logger.info(
                f"processed: {notification.processed}, queued: {notification.queued}, "
                f"sum: {notification.sum}"
            )
        return reason


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crawl every page under a URL and collect titles and descriptions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py https://example.com/docs/ -o pages.csv
  python main.py https://example.com/ -c 4 -i 200 -o pages.jsonl
  python main.py https://example.com/ --backend http -r 2 -o pages.csv
  python main.py https://example.com/ --config crawler.yaml -o pages.csv
        """
    )

    parser.add_argument('url', help='Seed URL; only URLs starting with it are crawled')

    parser.add_argument(
        '-i', '--interval',
        type=int,
        help='Pause in milliseconds between pages of one connection (default: 500)'
    )

    parser.add_argument(
        '-c', '--connections',
        type=int,
        help='Number of concurrent connections (default: 1)'
    )

    parser.add_argument(
        '-r', '--retry',
        type=int,
        help='Fetch attempts per page (default: 5)'
    )

    parser.add_argument(
        '-o', '--out',
        required=True,
        help='Output path'
    )

    parser.add_argument(
        '--format',
        choices=FORMATS,
        help='Output format (default: from the output suffix, csv otherwise)'
    )

    parser.add_argument(
        '--config',
        help='Path to a YAML configuration file'
    )

    parser.add_argument(
        '--backend',
        choices=BACKENDS,
        help='Page fetcher: headless browser or plain HTTP'
    )

    parser.add_argument(
        '--keep-trailing-slash',
        dest='ignore_trailing_slash',
        action='store_false',
        default=None,
        help='Treat "/a/" and "/a" as different pages'
    )

    parser.add_argument(
        '--keep-query-params',
        dest='ignore_query_params',
        action='store_false',
        default=None,
        help='Treat URLs differing only in their query as different pages'
    )

    parser.add_argument(
        '--keep-hash',
        dest='ignore_hash',
        action='store_false',
        default=None,
        help='Treat URLs differing only in their fragment as different pages'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Site Crawler {__version__}'
    )

    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_CODES[KILLED]
    except CrawlerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
