# Page extraction for sitemap-driven indexing.
# Turns one fetched HTML page into plain text plus the metadata the ranker uses.

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from trafilatura import extract

from indexer.url_keys import guess_category

logger = logging.getLogger(__name__)

CONTENT_SELECTORS = (
    "main.main-content",
    "main article",
    "article",
    "main",
    "#content",
)
ARTICLE_TYPES = {"article", "newsarticle", "blogposting", "webpage"}
MIN_EXTRACTED_CHARS = 40


@dataclass
class ExtractedPage:
    url: str
    title: str
    content: str
    category: str
    structured_metadata: List[Any] = field(default_factory=list)
    published_at: Optional[str] = None
    modified_at: Optional[str] = None

    def metadata_json(self) -> Optional[str]:
        if not self.structured_metadata:
            return None
        return json.dumps(self.structured_metadata, ensure_ascii=False)


def normalize_date(value: Optional[str]) -> Optional[str]:
    """ISO-ish timestamp -> UTC ``YYYY-MM-DD HH:MM:SS``; None when unparseable."""
    if not value or not isinstance(value, str):
        return None
    value = value.strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        try:
            parsed = datetime.strptime(value[:10], "%Y-%m-%d")
        except ValueError:
            logger.debug(f"Unparseable date: {value!r}")
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


def _meta_content(soup: BeautifulSoup, key: str) -> Optional[str]:
    for attr in ("property", "name"):
        tag = soup.find("meta", attrs={attr: key})
        if tag and tag.get("content", "").strip():
            return tag["content"].strip()
    return None


def _parse_json_ld(soup: BeautifulSoup) -> List[Any]:
    blocks: List[Any] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = (script.string or script.get_text() or "").strip()
        if not raw:
            continue
        try:
            blocks.append(json.loads(raw))
        except ValueError:
            logger.debug("Dropping malformed JSON-LD block")
    return blocks


def _iter_nodes(blocks: List[Any]):
    for block in blocks:
        items = block if isinstance(block, list) else [block]
        for item in items:
            if not isinstance(item, dict):
                continue
            graph = item.get("@graph")
            if isinstance(graph, list):
                for node in graph:
                    if isinstance(node, dict):
                        yield node
            yield item


def _node_is_article(node: Dict[str, Any]) -> bool:
    kind = node.get("@type")
    kinds = kind if isinstance(kind, list) else [kind]
    return any(isinstance(k, str) and k.lower() in ARTICLE_TYPES for k in kinds)


def json_ld_dates(blocks: List[Any]) -> Dict[str, Optional[str]]:
    """``datePublished``/``dateModified`` from article-like JSON-LD nodes."""
    found: Dict[str, Optional[str]] = {"published": None, "modified": None}
    nodes = list(_iter_nodes(blocks))
    # Typed article nodes first, then any node that carries dates.
    ordered = [n for n in nodes if _node_is_article(n)] + [n for n in nodes if not _node_is_article(n)]
    for node in ordered:
        if found["published"] is None and isinstance(node.get("datePublished"), str):
            found["published"] = node["datePublished"]
        if found["modified"] is None and isinstance(node.get("dateModified"), str):
            found["modified"] = node["dateModified"]
    return found


def _content_text(soup: BeautifulSoup, html: str) -> str:
    for selector in CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = node.get_text(" ", strip=True)
        if text:
            return text

    text = extract(html) or ""
    if len(text.strip()) < MIN_EXTRACTED_CHARS:
        text = soup.get_text(" ", strip=True)
    return text


def extract_page(url: str, html: str, lastmod: Optional[str] = None) -> ExtractedPage:
    """Extract title, plain text, JSON-LD, dates and category from a page."""
    soup = BeautifulSoup(html or "", "html.parser")
    structured = _parse_json_ld(soup)

    title = ""
    if soup.title and soup.title.get_text(strip=True):
        title = soup.title.get_text(strip=True)
    if not title:
        title = _meta_content(soup, "og:title") or url

    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    content = " ".join(_content_text(soup, html or "").split())

    dates = json_ld_dates(structured)
    published = dates["published"] or _meta_content(soup, "article:published_time") or lastmod
    modified = dates["modified"] or _meta_content(soup, "article:modified_time")

    return ExtractedPage(
        url=url,
        title=title,
        content=content,
        category=guess_category(url),
        structured_metadata=structured,
        published_at=normalize_date(published),
        modified_at=normalize_date(modified),
    )
