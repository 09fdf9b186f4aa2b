"""HTTP fetching for the sitemap crawler.

Every failure is reported through :class:`FetchResult` instead of raised,
so one bad page never aborts a crawl batch.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlparse

import requests

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "pagewise/0.1 (+sitemap indexer)"
LOCAL_HOST_SUFFIXES = (".test", ".local")


@dataclass
class FetchResult:
    """Result of fetching a single URL."""
    url: str
    status_code: int = 0
    content: Optional[str] = None
    error: Optional[str] = None
    final_url: Optional[str] = None  # After redirects

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 400 and self.content is not None


def should_verify_tls(url: str, verify: Optional[bool] = None) -> bool:
    """TLS verification for a URL; development hosts skip it unless forced."""
    if verify is not None:
        return verify
    host = (urlparse(url).hostname or "").lower()
    if host == "localhost" or host.endswith(LOCAL_HOST_SUFFIXES):
        return False
    return True


class HttpFetcher:
    """Synchronous fetcher built on a shared requests session."""

    def __init__(self, timeout: float = 30.0, user_agent: str = DEFAULT_USER_AGENT,
                 verify_ssl: Optional[bool] = None, max_redirects: int = 5,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.session = session or requests.Session()
        self.session.max_redirects = max_redirects
        self.session.headers.update({"User-Agent": user_agent})

    def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchResult:
        try:
            response = self.session.get(
                url,
                headers=headers,
                timeout=self.timeout,
                allow_redirects=True,
                verify=should_verify_tls(url, self.verify_ssl),
            )
        except requests.RequestException as e:
            logger.warning(f"Fetch failed for {url}: {e}")
            return FetchResult(url=url, error=str(e))

        if response.status_code >= 400:
            logger.warning(f"HTTP {response.status_code} for {url}")
            return FetchResult(
                url=url,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}",
                final_url=response.url,
            )

        return FetchResult(
            url=url,
            status_code=response.status_code,
            content=response.text,
            final_url=response.url,
        )

    def close(self):
        self.session.close()
