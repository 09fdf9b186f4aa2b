"""Sitemap-driven site indexing.

``index_all`` discovers page URLs through the sitemap index and queues the
ones not yet indexed; ``work_batch`` drains the queue a few URLs at a time
(normally from the background scheduler).
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from config.settings import Settings
from indexer.sqlite_adapter import ChunkStore
from indexer.url_keys import build_targets, extract_keys, match_any
from .crawl_queue import BatchResult, CrawlQueue
from .page_indexer import PageIndexer
from .scheduler import WorkerScheduler
from .sitemap import SitemapReader

logger = logging.getLogger(__name__)


@dataclass
class IndexReport:
    ok: bool
    message: str
    queued: int = 0
    skipped: int = 0


def _clean(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(v.strip() for v in values if isinstance(v, str) and v.strip()))


class SiteIndexer:
    """Coordinates sitemap discovery, the crawl queue and the page indexer."""

    def __init__(self, settings: Settings, store: ChunkStore, reader: SitemapReader,
                 page_indexer: PageIndexer, queue: CrawlQueue,
                 scheduler: Optional[WorkerScheduler] = None, cache=None):
        self.settings = settings
        self.store = store
        self.reader = reader
        self.page_indexer = page_indexer
        self.queue = queue
        self.scheduler = scheduler
        self.cache = cache

    def index_all(self) -> IndexReport:
        root = (self.settings.sitemap_url or "").strip()
        if not root:
            return IndexReport(False, "Sitemap URL is empty. Set it in the settings.")

        children = self.reader.child_sitemaps(root)
        if not children:
            return IndexReport(False, f"No child sitemaps parsed at {root}.")

        urls: List[str] = []
        lastmods: Dict[str, Optional[str]] = {}
        for child in children:
            for entry in self.reader.page_entries(child):
                loc = entry.loc.strip()
                if not loc:
                    continue
                urls.append(loc)
                if entry.lastmod and loc not in lastmods:
                    lastmods[loc] = entry.lastmod
        urls = _clean(urls)

        if not urls:
            return IndexReport(False, "Child sitemaps had no URLs.")

        skip_targets = build_targets(self.settings.skip_urls)
        candidates = [u for u in urls if not match_any(extract_keys(u), skip_targets)]
        skipped = len(urls) - len(candidates)

        existing = self.store.existing_urls(candidates)
        pending = [u for u in candidates if u not in existing]
        skipped += len(candidates) - len(pending)

        if not pending:
            self.queue.clear()
            return IndexReport(True, "Sitemap already indexed. No new URLs found.", 0, skipped)

        self.queue.enqueue(pending, lastmods)
        if self.scheduler is not None:
            self.scheduler.schedule(0)

        return IndexReport(
            True, f"Queued {len(pending)} new URLs for background indexing.", len(pending), skipped
        )

    def _process(self, url: str, lastmod: Optional[str]) -> Optional[bool]:
        return self.page_indexer.index_url(url, lastmod=lastmod, delete_urls=[url])

    def _reschedule(self):
        if self.scheduler is not None:
            self.scheduler.schedule(self.settings.worker_reschedule_seconds)

    def work_batch(self, batch_size: Optional[int] = None) -> BatchResult:
        size = batch_size or self.settings.batch_size
        return self.queue.work_batch(size, self._process, reschedule=self._reschedule)

    def index_single_url(self, url: str, force: bool = False,
                         known_variants: Iterable[str] = ()) -> Optional[bool]:
        """Reindex one URL right away, purging its stored variants first."""
        url = (url or "").strip()
        if not url:
            return None

        variants = _clean([url, *known_variants])
        result = self.page_indexer.index_url(url, force=force, delete_urls=variants)
        if result is True and self.cache is not None:
            self.cache.purge_by_source_urls(variants)
        return result

    def delete_document(self, url: str, variants: Iterable[str] = (),
                        paths: Iterable[str] = ()) -> Dict[str, int]:
        """Remove a document's chunks and the cached answers that cite it."""
        urls = _clean([url, *variants])
        path_list = _clean(paths)
        chunks = self.store.delete_document(urls, path_list)
        purged = self.cache.purge_by_source_urls(urls, path_list) if self.cache is not None else 0
        return {"chunks_deleted": chunks, "cache_entries_purged": purged}

    def status(self) -> Dict[str, Any]:
        status = self.queue.status()
        status["scheduled"] = self.scheduler.pending() if self.scheduler is not None else False
        status["index"] = self.store.stats()
        return status
