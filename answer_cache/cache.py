"""Answer cache with exact and near-duplicate question lookup.

A question is normalized (markup, punctuation and case removed) and hashed;
an exact hash hit wins, otherwise the most recent rows of similar length
are compared with a character similarity ratio.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from rapidfuzz import fuzz

from indexer.url_keys import build_targets, extract_keys, match_any
from observability.metrics import record_cache_lookup
from retrieval.retriever import Source
from .normalizer import normalize_question, question_hash
from .repository import CacheRepository, CacheRow
from .sources import decode_sources, encode_sources, parse_sources_input

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 99.0


@dataclass
class CacheEntry:
    id: int
    question: str
    normalized_question: str
    normalized_hash: str
    answer: str
    sources: List[Source] = field(default_factory=list)
    created_at: str = ""

    @classmethod
    def from_row(cls, row: CacheRow) -> 'CacheEntry':
        return cls(
            id=row.id,
            question=row.question,
            normalized_question=row.normalized_question,
            normalized_hash=row.normalized_hash,
            answer=row.answer,
            sources=decode_sources(row.sources),
            created_at=row.created_at,
        )


@dataclass
class CachedAnswer:
    answer: str
    sources: List[Source] = field(default_factory=list)
    entry_id: Optional[int] = None
    match: str = "exact"


class AnswerCache:
    def __init__(self, repository: CacheRepository, enabled: bool = True,
                 threshold: float = SIMILARITY_THRESHOLD):
        self.repository = repository
        self.enabled = enabled
        self.threshold = threshold

    def find(self, question: str) -> Optional[CachedAnswer]:
        if not self.enabled:
            record_cache_lookup("disabled")
            return None

        normalized = normalize_question(question)
        if not normalized:
            record_cache_lookup("miss")
            return None

        row = self.repository.find_by_hash(question_hash(normalized))
        if row is not None:
            record_cache_lookup("exact")
            return CachedAnswer(row.answer, decode_sources(row.sources), row.id, "exact")

        for row in self.repository.candidates_by_length(len(normalized)):
            if not row.normalized_question:
                continue
            if fuzz.ratio(normalized, row.normalized_question) >= self.threshold:
                logger.debug(f"Fuzzy cache hit for entry {row.id}")
                record_cache_lookup("fuzzy")
                return CachedAnswer(row.answer, decode_sources(row.sources), row.id, "fuzzy")

        record_cache_lookup("miss")
        return None

    def store(self, question: str, answer: str, sources: Iterable = ()) -> Optional[int]:
        """Cache an answer; returns the entry id, or None when nothing was stored."""
        if not self.enabled:
            return None
        question = (question or "").strip()
        answer = (answer or "").strip()
        if not question or not answer:
            return None

        normalized = normalize_question(question)
        if not normalized:
            return None

        return self.repository.upsert(
            question, normalized, question_hash(normalized), answer, encode_sources(sources)
        )

    def purge_by_source_urls(self, urls: Iterable[str], paths: Iterable[str] = ()) -> int:
        """Delete every cached answer citing one of ``urls`` or ``paths``."""
        targets = build_targets(urls, paths)
        if not targets:
            return 0

        ids = []
        for row in self.repository.rows_with_sources():
            for source in decode_sources(row.sources):
                if source.url and match_any(extract_keys(source.url), targets):
                    ids.append(row.id)
                    break

        deleted = self.repository.delete_ids(ids)
        if deleted:
            logger.info(f"Purged {deleted} cached answers")
        return deleted

    def get(self, entry_id: int) -> Optional[CacheEntry]:
        row = self.repository.get(entry_id)
        return CacheEntry.from_row(row) if row else None

    def list_entries(self, limit: int = 50, offset: int = 0) -> List[CacheEntry]:
        return [CacheEntry.from_row(r) for r in self.repository.list_rows(limit, offset)]

    def update(self, entry_id: int, answer: str, sources: Union[str, Iterable] = ()) -> bool:
        """Edit a cached answer; raw ``sources`` strings are parsed as JSON (ValueError if invalid)."""
        answer = (answer or "").strip()
        if not answer:
            raise ValueError("Answer must not be empty")
        if isinstance(sources, str):
            sources = parse_sources_input(sources)
        return self.repository.update(entry_id, answer, encode_sources(sources))

    def delete(self, entry_id: int) -> bool:
        return self.repository.delete_ids([entry_id]) > 0

    def delete_all(self) -> int:
        deleted = self.repository.delete_all()
        logger.info(f"Cleared answer cache ({deleted} entries)")
        return deleted

    def count(self) -> int:
        return self.repository.count()
