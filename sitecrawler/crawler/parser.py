"""
HTML extraction of page metadata and outgoing links.
"""

import re
import logging
from typing import Dict, List, Optional
from urllib.parse import urljoin, urlparse
from bs4 import BeautifulSoup


logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


def _clean_text(text: Optional[str]) -> str:
    if not text:
        return ''
    return _WHITESPACE.sub(' ', text).strip()


class ContentParser:
    """
    Extracts the title, meta description and anchors of an HTML document.

    Missing or malformed elements are treated as absent; nothing here raises
    on bad markup.
    """

    def __init__(self, html_content: str):
        self.soup = BeautifulSoup(html_content or '', 'lxml')

    def extract_metadata(self) -> Dict[str, str]:
        """Return title and description, each only when the element exists."""
        metadata = {}

        title_tag = self.soup.find('title')
        if title_tag is not None:
            metadata['title'] = _clean_text(title_tag.get_text())

        meta_desc = self.soup.find('meta', attrs={'name': 'description'})
        if meta_desc is not None:
            metadata['description'] = _clean_text(meta_desc.get('content', ''))

        return metadata

    def extract_links(self, base_url: str, prefix: str) -> List[str]:
        """
        Absolute URLs of every <a href> starting with ``prefix``.

        Relative hrefs are resolved against ``base_url``; document order and
        duplicates are kept.
        """
        links = []
        for anchor in self.soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href:
                continue
            try:
                absolute = urljoin(base_url, href)
                scheme = urlparse(absolute).scheme
            except ValueError:
                # e.g. an unterminated IPv6 host
                logger.debug(f"Skipping malformed href: {href}")
                continue
            if scheme not in ('http', 'https'):
                continue
            if absolute.startswith(prefix):
                links.append(absolute)
        return links


def extract_metadata(html_content: str) -> Dict[str, str]:
    return ContentParser(html_content).extract_metadata()


def extract_links(html_content: str, base_url: str, prefix: str) -> List[str]:
    return ContentParser(html_content).extract_links(base_url, prefix)
