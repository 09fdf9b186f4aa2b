"""Pipelines package for pagewise.

Provides sitemap discovery, page fetching and extraction, the crawl queue
and the site indexer.
"""

from .fetcher import HttpFetcher, FetchResult
from .sitemap import SitemapReader, SitemapEntry, parse_sitemap_index, parse_urlset
from .html_extract import ExtractedPage, extract_page
from .crawl_queue import KeyValueStore, CrawlState, CrawlQueue, BatchResult
from .page_indexer import PageIndexer
from .scheduler import WorkerScheduler
from .site_indexer import SiteIndexer, IndexReport

__all__ = [
    # Fetching
    'HttpFetcher',
    'FetchResult',

    # Sitemaps
    'SitemapReader',
    'SitemapEntry',
    'parse_sitemap_index',
    'parse_urlset',

    # Extraction
    'ExtractedPage',
    'extract_page',

    # Queue and indexing
    'KeyValueStore',
    'CrawlState',
    'CrawlQueue',
    'BatchResult',
    'PageIndexer',
    'WorkerScheduler',
    'SiteIndexer',
    'IndexReport',
]
