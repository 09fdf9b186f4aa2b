"""Serialization of cached answer sources.

Stored as a JSON list of ``{"title", "url", "score"}``; anything that is
not an object is dropped rather than raised.
"""

import json
import logging
from typing import Any, Iterable, List

from retrieval.retriever import Source

logger = logging.getLogger(__name__)


def _coerce(item: Any):
    if isinstance(item, Source):
        return item
    if not isinstance(item, dict):
        return None
    try:
        score = float(item.get('score') or 0.0)
    except (TypeError, ValueError):
        score = 0.0
    return Source(
        title=str(item.get('title') or ''),
        url=str(item.get('url') or ''),
        score=score,
    )


def normalize_sources(sources: Iterable[Any]) -> List[Source]:
    normalized = []
    for item in sources or []:
        source = _coerce(item)
        if source is not None:
            normalized.append(source)
    return normalized


def encode_sources(sources: Iterable[Any]) -> str:
    normalized = normalize_sources(sources)
    if not normalized:
        return ''
    return json.dumps([s.to_dict() for s in normalized], ensure_ascii=False)


def decode_sources(raw: str) -> List[Source]:
    if not raw:
        return []
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding malformed cached sources")
        return []
    if not isinstance(decoded, list):
        return []
    return normalize_sources(decoded)


def parse_sources_input(raw: str) -> List[Source]:
    """Sources typed by an operator; raises ValueError on invalid JSON.

    Entries without title, url and score are dropped.
    """
    raw = (raw or '').strip()
    if not raw:
        return []
    try:
        decoded = json.loads(raw)
    except ValueError as e:
        raise ValueError(f"Invalid sources JSON: {e}") from e
    if not isinstance(decoded, list):
        raise ValueError("Invalid sources JSON: expected a list")
    return [s for s in normalize_sources(decoded) if s.title or s.url or s.score]
