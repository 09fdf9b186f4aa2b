"""Fetch, extract, chunk, embed and store one page."""

import hashlib
import logging
from typing import Iterable, List, Optional

from indexer.chunker import chunk_text, DEFAULT_CHUNK_CHARS
from indexer.embeddings import EmbeddingClient
from indexer.models import Chunk
from indexer.sqlite_adapter import ChunkStore, utc_now
from observability.logging import log_performance
from observability.metrics import record_index_result
from .fetcher import HttpFetcher
from .html_extract import extract_page

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class PageIndexer:
    """Indexes single URLs into the chunk store.

    ``index_url`` returns True when rows were written, None when the page
    was skipped (unchanged or empty) and False when it could not be fetched.
    """

    def __init__(self, store: ChunkStore, fetcher: HttpFetcher, embedder: EmbeddingClient,
                 chunk_chars: int = DEFAULT_CHUNK_CHARS):
        self.store = store
        self.fetcher = fetcher
        self.embedder = embedder
        self.chunk_chars = chunk_chars

    @log_performance(threshold_ms=10000.0)
    def index_url(self, url: str, lastmod: Optional[str] = None, force: bool = False,
                  delete_urls: Iterable[str] = ()) -> Optional[bool]:
        url = (url or "").strip()
        if not url:
            return None

        fetched = self.fetcher.fetch(url)
        if not fetched.ok:
            logger.warning(f"Skipping {url}: {fetched.error or fetched.status_code}")
            record_index_result(False)
            return False

        if not (fetched.content or "").strip():
            record_index_result(None)
            return None

        page = extract_page(url, fetched.content, lastmod=lastmod)
        if not page.content:
            logger.info(f"No text extracted from {url}")
            record_index_result(None)
            return None

        digest = content_hash(page.content)
        if not force and self.store.get_document_state(url) == (digest, page.category):
            logger.debug(f"Unchanged: {url}")
            record_index_result(None)
            return None

        texts = chunk_text(page.content, self.chunk_chars)
        vectors = self.embedder.embed_many(texts)

        now = utc_now()
        metadata = page.metadata_json()
        chunks: List[Chunk] = [
            Chunk(
                url=url,
                category=page.category,
                title=page.title,
                chunk_index=index,
                content=text,
                content_hash=digest,
                embedding=vector,
                published_at=page.published_at,
                modified_at=page.modified_at,
                updated_at=now,
                structured_metadata=metadata,
            )
            for index, (text, vector) in enumerate(zip(texts, vectors))
        ]

        written = self.store.replace_document(url, chunks, delete_urls=delete_urls)
        logger.info(f"Indexed {url}: {written} chunks")
        record_index_result(True, written)
        return True
