"""Pure scoring helpers for the hybrid ranker.

final = 0.5 * lexical + 0.4 * cosine + 0.1 * coverage + 0.1 * numeric + boosts
"""

import math
import re
from datetime import datetime
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from rapidfuzz import fuzz

from .query import Constraints, DateHint

LEXICAL_WEIGHT = 0.5
COSINE_WEIGHT = 0.4
COVERAGE_WEIGHT = 0.1
NUMERIC_WEIGHT = 0.1

CATEGORY_MATCH_BOOST = 0.50
HUB_BOOST = 0.45
TITLE_OVERLAP_WEIGHT = 0.35
TITLE_SIMILARITY_MAX = 0.4
RECENCY_MAX = 0.1
RECENCY_WINDOW_DAYS = 365.0
DATE_HINT_BOOST = 0.15
HINT_BOOST = 0.05

PRIORITY_MAX = 0.12
PRIORITY_MIN = -0.02

SNIPPET_CHARS = 650
ELLIPSIS = '…'


def normalize_lexical(raw: float) -> float:
    """Logistic squash of a raw full-text score into [0, 1]."""
    try:
        value = 1.0 / (1.0 + math.exp(-0.5 * (float(raw) - 5.0)))
    except OverflowError:
        value = 0.0
    return max(0.0, min(1.0, value))


def coverage_score(text: str, constraints: Constraints) -> float:
    """Share of required terms and phrases present; 1.0 when none are required."""
    lower = (text or '').lower()
    needles = [t for t in constraints.must_terms if t] + [p.lower() for p in constraints.must_phrases if p]
    if not needles:
        return 1.0
    hits = sum(1 for needle in needles if needle in lower)
    return hits / len(needles)


def numeric_ok(text: str, numbers: Iterable[str]) -> bool:
    """Every number of the question appears digit-wise somewhere in ``text``."""
    numbers = list(numbers)
    if not numbers:
        return True
    digits = re.sub(r'\D', '', text or '')
    for number in numbers:
        wanted = re.sub(r'\D', '', number)
        if not wanted:
            continue
        if not digits or wanted not in digits:
            return False
    return True


def category_priority_boosts(order: List[str]) -> Dict[str, float]:
    """Linearly spaced boosts from +0.12 (first) down to -0.02 (last)."""
    total = len(order)
    if total == 0:
        return {}
    step = (PRIORITY_MAX - PRIORITY_MIN) / (total - 1) if total > 1 else 0.0
    return {
        slug: round(max(PRIORITY_MIN, PRIORITY_MAX - index * step), 6)
        for index, slug in enumerate(order)
    }


def is_hub_url(url: str, category: str) -> bool:
    """True when the URL path is the category root (``/cat`` or ``/cat/index``)."""
    path = (urlparse(url).path or '').rstrip('/')
    needle = '/' + category.strip('/')
    return path == needle or path == needle + '/index'


def title_overlap_boost(title: str, constraints: Constraints) -> float:
    lower = (title or '').lower()
    if not lower:
        return 0.0
    needles = constraints.needles()
    if not needles:
        return 0.0
    hits = sum(1 for needle in needles if needle in lower)
    if hits == 0:
        return 0.0
    return TITLE_OVERLAP_WEIGHT * hits / len(needles)


def title_similarity_boost(title: str, question_lower: str) -> float:
    """Character similarity of title and question, capped at 0.4."""
    lower = (title or '').lower()
    if not lower:
        return 0.0
    pct = fuzz.ratio(lower, question_lower)
    if pct <= 0:
        return 0.0
    return min(TITLE_SIMILARITY_MAX, pct / 100.0 * TITLE_SIMILARITY_MAX)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def recency_boost(published_at: Optional[str], now: datetime) -> float:
    """Up to +0.1 for fresh content, decaying linearly to 0 after a year."""
    published = parse_timestamp(published_at)
    if published is None:
        return 0.0
    age_days = max(0.0, (now - published).total_seconds() / 86400.0)
    if age_days >= RECENCY_WINDOW_DAYS + 1:
        return 0.0
    return RECENCY_MAX * max(0.0, 1.0 - age_days / RECENCY_WINDOW_DAYS)


def date_hint_matches(content: str, published_at: Optional[str], hint: DateHint) -> bool:
    if not hint:
        return False
    if hint.text and hint.text in (content or '').lower():
        return True
    if hint.iso and published_at and str(published_at).startswith(hint.iso):
        return True
    return False


def best_snippet(content: str, constraints: Constraints, size: int = SNIPPET_CHARS) -> str:
    """A ``size`` window starting a third of a window before the first needle."""
    text = re.sub(r'\s+', ' ', content or '').strip()
    if len(text) <= size:
        return text

    lower = text.lower()
    positions = [lower.find(needle) for needle in constraints.needles()]
    positions = [p for p in positions if p >= 0]
    pos = min(positions) if positions else 0

    start = max(0, pos - size // 3)
    snippet = text[start:start + size]
    prefix = ELLIPSIS if start > 0 else ''
    suffix = ELLIPSIS if len(text) > start + size else ''
    return prefix + snippet + suffix
