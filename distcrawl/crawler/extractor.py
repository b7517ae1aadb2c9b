"""
Link extraction from fetched documents.
"""
import logging
from urllib.parse import urljoin

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)


class LinkExtractor:
    """Pulls raw outbound links out of an HTML document; no normalization, no filtering."""

    def __init__(self, parser='html.parser'):
        self.parser = parser

    def parse(self, document, base_url=None):
        """
        Parse a document once and return (links, resolve_base).

        ``links`` are the raw href values of every <a> element in document
        order. ``resolve_base`` is the URL those links resolve against: the
        page's <base href> if it declares one, otherwise ``base_url``.
        """
        if not document or not document.strip():
            return [], base_url

        soup = BeautifulSoup(document, self.parser)
        resolve_base = base_url
        base = soup.find('base', href=True)
        if base and base['href'].strip():
            try:
                resolve_base = urljoin(base_url or '', base['href'].strip())
            except ValueError as e:
                logger.debug(f"Ignoring invalid <base href> on {base_url}: {e}")

        links = []
        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if href:
                links.append(href)
        logger.debug(f"Extracted {len(links)} links from {base_url}")
        return links, resolve_base

    def extract_links(self, document, base_url=None):
        """Return the raw href values of every <a> element in the document."""
        links, _ = self.parse(document, base_url)
        return links
