"""Shared fixtures: temporary databases, fake embedders and fake fetchers."""

import hashlib
import os
import re
import sys
from typing import Dict, List, Optional

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from config.database import DatabaseConfig, connect
from config.settings import Settings
from indexer.embeddings import EmbeddingClient, normalize
from indexer.sqlite_adapter import ChunkStore
from pipelines.fetcher import FetchResult

DIMENSIONS = 64


class FakeEmbedder(EmbeddingClient):
    """Deterministic bag-of-words embedding; texts sharing words get high cosine."""

    def __init__(self):
        self.calls: List[str] = []

    def embed(self, text: str) -> np.ndarray:
        self.calls.append(text)
        vector = np.zeros(DIMENSIONS, dtype=np.float32)
        for token in re.findall(r'\w+', (text or '').lower()):
            bucket = int(hashlib.md5(token.encode('utf-8')).hexdigest(), 16) % DIMENSIONS
            vector[bucket] += 1.0
        if not vector.any():
            vector[0] = 1.0
        return normalize(vector)


class FakeFetcher:
    """Serves canned responses; unknown URLs answer 404."""

    def __init__(self, pages: Optional[Dict[str, object]] = None):
        self.pages: Dict[str, object] = dict(pages or {})
        self.requested: List[str] = []

    def fetch(self, url: str, headers=None) -> FetchResult:
        self.requested.append(url)
        page = self.pages.get(url)
        if page is None:
            return FetchResult(url=url, status_code=404, error="HTTP 404")
        if isinstance(page, FetchResult):
            return page
        if isinstance(page, tuple):
            status, body = page
            error = f"HTTP {status}" if status >= 400 else None
            return FetchResult(url=url, status_code=status, content=body, error=error)
        return FetchResult(url=url, status_code=200, content=str(page), final_url=url)

    def close(self):
        pass


def article_html(title: str, body: str, published: Optional[str] = None) -> str:
    """A minimal article page, optionally with a JSON-LD publish date."""
    json_ld = ''
    if published:
        json_ld = (
            '<script type="application/ld+json">'
            '{"@context": "https://schema.org", "@type": "Article", '
            f'"datePublished": "{published}"}}'
            '</script>'
        )
    return (
        f'<html><head><title>{title}</title>{json_ld}</head>'
        f'<body><nav>Menu</nav><main><article><h1>{title}</h1><p>{body}</p></article></main>'
        '<footer>Footer</footer></body></html>'
    )


@pytest.fixture
def db(tmp_path):
    database = connect(DatabaseConfig(sqlite_path=str(tmp_path / "pagewise.db")))
    yield database
    database.close()


@pytest.fixture
def store(db):
    return ChunkStore(db)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def settings():
    return Settings(
        sitemap_url="https://site.test/sitemap_index.xml",
        api_key="test-key",
        crawl_throttle_seconds=0,
        batch_size=2,
    )
