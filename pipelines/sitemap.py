"""Sitemap index and urlset parsing.

Documents are parsed with BeautifulSoup's XML parser, which recovers from
most malformed markup. When it finds nothing, a regular-expression scan is
the last resort so a badly broken sitemap still yields URLs.
"""

import re
import html
import logging
from dataclasses import dataclass
from typing import List, Optional

from bs4 import BeautifulSoup

from .fetcher import HttpFetcher

logger = logging.getLogger(__name__)

SITEMAP_ACCEPT = "application/xml, text/xml;q=0.9, */*;q=0.8"

_CHILD_SITEMAP_RE = re.compile(r"-sitemap\d*\.xml$", re.IGNORECASE)
_LOC_RE = re.compile(r"<loc>\s*(.*?)\s*</loc>", re.IGNORECASE | re.DOTALL)
_LASTMOD_RE = re.compile(r"<lastmod>\s*(.*?)\s*</lastmod>", re.IGNORECASE | re.DOTALL)
_URL_BLOCK_RE = re.compile(r"<url\b[^>]*>(.*?)</url>", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class SitemapEntry:
    """One ``<url>`` of a urlset."""
    loc: str
    lastmod: Optional[str] = None


def clean_body(body: Optional[str]) -> str:
    """Strip a UTF-8 BOM and leading whitespace."""
    if not body:
        return ""
    return body.lstrip("\ufeff").lstrip()


def _dedupe(values: List[str]) -> List[str]:
    return [v for v in dict.fromkeys(values) if v]


def _child_text(node, name: str) -> Optional[str]:
    child = node.find(name, recursive=False)
    if child is None:
        return None
    return child.get_text(strip=True) or None


def _unescape(value: str) -> str:
    return html.unescape(value).strip()


def scan_sitemap_index(body: str) -> List[str]:
    """Regex scan for child sitemap URLs in an unparseable index."""
    candidates = [_unescape(loc) for loc in _LOC_RE.findall(body)]
    return _dedupe([c for c in candidates if _CHILD_SITEMAP_RE.search(c)])


def scan_urlset(body: str) -> List[SitemapEntry]:
    """Regex scan for ``<url>`` entries in an unparseable urlset."""
    entries: List[SitemapEntry] = []
    for block in _URL_BLOCK_RE.findall(body):
        loc_match = _LOC_RE.search(block)
        loc = _unescape(loc_match.group(1)) if loc_match else ""
        if not loc:
            continue
        lastmod_match = _LASTMOD_RE.search(block)
        lastmod = _unescape(lastmod_match.group(1)) if lastmod_match else ""
        entries.append(SitemapEntry(loc=loc, lastmod=lastmod or None))
    return entries


def parse_sitemap_index(body: str) -> List[str]:
    """Child sitemap URLs of a ``<sitemapindex>`` document."""
    body = clean_body(body)
    if not body:
        return []

    soup = BeautifulSoup(body, "xml")
    if soup.find("sitemapindex") is not None:
        urls = _dedupe([_child_text(node, "loc") or "" for node in soup.find_all("sitemap")])
        if urls:
            return urls

    if "<sitemapindex" in body.lower():
        urls = scan_sitemap_index(body)
        if urls:
            return urls

    logger.warning(f"No child sitemaps parsed from body (first 400 chars): {body[:400]}")
    return []


def parse_urlset(body: str) -> List[SitemapEntry]:
    """Page entries of a ``<urlset>`` document."""
    body = clean_body(body)
    if not body:
        return []

    entries: List[SitemapEntry] = []
    soup = BeautifulSoup(body, "xml")
    if soup.find("urlset") is not None:
        for node in soup.find_all("url"):
            loc = _child_text(node, "loc")
            if loc:
                entries.append(SitemapEntry(loc=loc, lastmod=_child_text(node, "lastmod")))

    if not entries and "<urlset" in body.lower():
        entries = scan_urlset(body)

    if not entries:
        logger.warning(f"No URLs parsed (first 400 chars): {body[:400]}")
    return entries


class SitemapReader:
    """Fetches and parses sitemap documents."""

    def __init__(self, fetcher: HttpFetcher):
        self.fetcher = fetcher

    def fetch_body(self, url: str) -> Optional[str]:
        result = self.fetcher.fetch(url, headers={"Accept": SITEMAP_ACCEPT})
        if not result.ok or not (200 <= result.status_code < 300):
            logger.warning(f"Sitemap fetch failed for {url}: {result.error or result.status_code}")
            return None
        body = clean_body(result.content)
        return body or None

    def child_sitemaps(self, index_url: str) -> List[str]:
        body = self.fetch_body(index_url)
        return parse_sitemap_index(body) if body else []

    def page_entries(self, sitemap_url: str) -> List[SitemapEntry]:
        body = self.fetch_body(sitemap_url)
        return parse_urlset(body) if body else []
