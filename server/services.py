"""Wiring of the pagewise components from settings."""

import logging
from dataclasses import dataclass
from typing import Optional

from answer_cache.cache import AnswerCache
from answer_cache.repository import CacheRepository
from config.database import Database, DatabaseConfig, connect
from config.settings import Settings
from indexer.embeddings import EmbeddingClient, create_embedding_client
from indexer.sqlite_adapter import ChunkStore
from pipelines.crawl_queue import CrawlQueue, KeyValueStore
from pipelines.fetcher import HttpFetcher
from pipelines.page_indexer import PageIndexer
from pipelines.scheduler import WorkerScheduler
from pipelines.site_indexer import SiteIndexer
from pipelines.sitemap import SitemapReader
from retrieval.retriever import HybridRetriever
from .answering import AnswerGenerator, AnswerService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    db: Database
    store: ChunkStore
    fetcher: HttpFetcher
    embedder: EmbeddingClient
    cache: AnswerCache
    retriever: HybridRetriever
    site_indexer: SiteIndexer
    answers: AnswerService
    scheduler: Optional[WorkerScheduler] = None

    def close(self):
        if self.scheduler is not None:
            self.scheduler.shutdown()
        self.fetcher.close()
        self.db.close()


def build_services(settings: Settings, db_config: Optional[DatabaseConfig] = None,
                   embedder: Optional[EmbeddingClient] = None,
                   fetcher: Optional[HttpFetcher] = None,
                   generator: Optional[AnswerGenerator] = None,
                   with_scheduler: bool = True) -> Services:
    """Open the database and build every component.

    The worker scheduler is created but not started; the API starts it
    on startup, the CLI drives batches itself.
    """
    db = connect(db_config)
    store = ChunkStore(db)
    fetcher = fetcher or HttpFetcher(
        timeout=settings.request_timeout,
        user_agent=settings.user_agent,
        verify_ssl=settings.verify_ssl,
    )
    embedder = embedder or create_embedding_client(settings)
    cache = AnswerCache(CacheRepository(db), enabled=settings.cache_enabled)

    queue = CrawlQueue(
        KeyValueStore(db),
        lease_ttl=settings.lease_ttl_seconds,
        throttle_seconds=settings.crawl_throttle_seconds,
    )
    page_indexer = PageIndexer(store, fetcher, embedder, chunk_chars=settings.chunk_chars)
    site_indexer = SiteIndexer(
        settings, store, SitemapReader(fetcher), page_indexer, queue, cache=cache
    )

    scheduler = None
    if with_scheduler:
        scheduler = WorkerScheduler(site_indexer.work_batch)
        site_indexer.scheduler = scheduler

    retriever = HybridRetriever(store, embedder, settings)
    answers = AnswerService(retriever, cache, generator, settings.fallback_answer)

    logger.info(f"Services ready (embedding provider={settings.embedding_provider})")
    return Services(
        settings=settings,
        db=db,
        store=store,
        fetcher=fetcher,
        embedder=embedder,
        cache=cache,
        retriever=retriever,
        site_indexer=site_indexer,
        answers=answers,
        scheduler=scheduler,
    )
