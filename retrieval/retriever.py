"""Hybrid lexical/vector retrieval over the chunk store.

Candidates come from the store's full-text (or substring) search, are
filtered by the question's constraints, scored by a weighted blend of
lexical score, cosine similarity, coverage and hand-tuned boosts, then
grouped per document into context snippets and source attributions.
"""

import time
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from config.settings import Settings
from indexer.embeddings import EmbeddingClient, cosine
from indexer.models import Candidate
from indexer.sqlite_adapter import ChunkStore
from indexer.url_keys import url_key
from observability.logging import log_performance
from observability.metrics import record_retrieval
from .query import Constraints, build_constraints, infer_category_hint, parse_date_hint
from . import scoring

logger = logging.getLogger(__name__)

CATEGORY_CANDIDATE_LIMIT = 500
INDEX_CANDIDATE_LIMIT = 400
CHUNKS_PER_DOCUMENT = 2
CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass
class Source:
    title: str
    url: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "url": self.url, "score": self.score}


@dataclass
class RetrievalResult:
    context: str = ""
    sources: List[Source] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.context.strip()


@dataclass
class ScoredCandidate:
    candidate: Candidate
    category_match: bool = False
    hub: bool = False
    lexical: float = 0.0
    cosine: float = 0.0
    coverage: float = 0.0
    numeric: float = 0.0
    boost: float = 0.0
    final: float = 0.0

    @property
    def chunk(self):
        return self.candidate.chunk


class HybridRetriever:
    """Retrieves grounded context for a question."""

    def __init__(self, store: ChunkStore, embedder: EmbeddingClient, settings: Settings,
                 now: Callable[[], datetime] = lambda: datetime.now(timezone.utc).replace(tzinfo=None)):
        self.store = store
        self.embedder = embedder
        self.settings = settings
        self.now = now
        self.priority = scoring.category_priority_boosts(settings.category_priority())

    # -- candidates ---------------------------------------------------------

    def candidates(self, question: str, category_hint: Optional[str]) -> List[Candidate]:
        found: List[Candidate] = []
        if category_hint:
            found = self.store.search_by_category(category_hint, question, CATEGORY_CANDIDATE_LIMIT)
        if not found:
            found = self.store.search(question, INDEX_CANDIDATE_LIMIT)
        if not found:
            fallback = category_hint or self.settings.default_category
            found = self.store.search_by_category(fallback, question, CATEGORY_CANDIDATE_LIMIT)
        return found

    # -- filtering and scoring ----------------------------------------------

    def _passes(self, candidate: Candidate, constraints: Constraints, category_match: bool) -> bool:
        content = candidate.chunk.content.lower()
        if not content:
            return False
        if any(anti in content for anti in constraints.anti_terms):
            return False
        if category_match:
            return True

        phrase_hit = not constraints.must_phrases or any(
            p.lower() in content for p in constraints.must_phrases
        )
        term_hit = not constraints.must_terms or any(t in content for t in constraints.must_terms)
        # Any-of gate: one phrase or one term is enough.
        return phrase_hit or term_hit

    def _hint_boost(self, url: str, hints: Mapping[str, Any]) -> float:
        boost = 0.0
        hinted_url = str(hints.get("url") or "")
        if hinted_url and url_key(hinted_url) and url_key(hinted_url) == url_key(url):
            boost += scoring.HINT_BOOST
        document_key = str(hints.get("document_key") or "")
        if document_key and document_key == url:
            boost += scoring.HINT_BOOST
        return boost

    def score(self, scored: ScoredCandidate, query_vector, constraints: Constraints,
              question_lower: str, date_hint, hints: Mapping[str, Any], now: datetime) -> ScoredCandidate:
        chunk = scored.chunk
        scored.lexical = scoring.normalize_lexical(scored.candidate.lexical_score)
        scored.cosine = cosine(query_vector, chunk.embedding)
        scored.coverage = scoring.coverage_score(chunk.content, constraints)
        scored.numeric = 1.0 if scoring.numeric_ok(chunk.content, constraints.numbers) else 0.0

        boost = self._hint_boost(chunk.url, hints)
        boost += self.priority.get(chunk.category, 0.0)
        if scored.category_match:
            boost += scoring.CATEGORY_MATCH_BOOST
        if scored.hub:
            boost += scoring.HUB_BOOST
        boost += scoring.title_overlap_boost(chunk.title, constraints)
        boost += scoring.title_similarity_boost(chunk.title, question_lower)
        boost += scoring.recency_boost(chunk.published_at, now)
        if scoring.date_hint_matches(chunk.content, chunk.published_at, date_hint):
            boost += scoring.DATE_HINT_BOOST
        scored.boost = boost

        scored.final = (
            scoring.LEXICAL_WEIGHT * scored.lexical
            + scoring.COSINE_WEIGHT * scored.cosine
            + scoring.COVERAGE_WEIGHT * scored.coverage
            + scoring.NUMERIC_WEIGHT * scored.numeric
            + boost
        )
        return scored

    def rank(self, question: str, candidates: List[Candidate], category_hint: Optional[str],
             hints: Optional[Mapping[str, Any]] = None) -> List[ScoredCandidate]:
        """Filter, score and sort candidates; embeds the question when any survive."""
        constraints = build_constraints(question)
        hints = hints or {}

        survivors: List[ScoredCandidate] = []
        for candidate in candidates:
            category_match = bool(category_hint) and candidate.chunk.category.lower() == category_hint
            if not self._passes(candidate, constraints, category_match):
                continue
            hub = bool(category_hint) and bool(candidate.chunk.url) and scoring.is_hub_url(candidate.chunk.url, category_hint)
            survivors.append(ScoredCandidate(candidate, category_match=category_match, hub=hub))

        if not survivors:
            return []

        query_vector = self.embedder.embed(question)
        question_lower = question.lower()
        date_hint = parse_date_hint(question)
        now = self.now()
        for scored in survivors:
            self.score(scored, query_vector, constraints, question_lower, date_hint, hints, now)

        floor = self.settings.cosine_min
        kept = [s for s in survivors if s.category_match or s.hub or s.cosine >= floor]
        # Stable: equal scores keep lexical order.
        kept.sort(key=lambda s: s.final, reverse=True)
        return kept

    # -- assembly -----------------------------------------------------------

    def assemble(self, ranked: List[ScoredCandidate], constraints: Constraints, top_k: int) -> RetrievalResult:
        documents: "OrderedDict[str, List[ScoredCandidate]]" = OrderedDict()
        for scored in ranked:
            if not scored.chunk.url:
                continue
            documents.setdefault(scored.chunk.url, []).append(scored)

        parts: List[str] = []
        sources: List[Source] = []
        for url, rows in documents.items():
            if len(sources) >= top_k:
                break
            best = rows[:CHUNKS_PER_DOCUMENT]
            title = best[0].chunk.title or url
            for scored in best:
                snippet = scoring.best_snippet(scored.chunk.content, constraints, self.settings.snippet_chars)
                parts.append(f"### {title} ({url})\n{snippet}")
            sources.append(Source(title=title, url=url, score=round(best[0].final, 4)))

        return RetrievalResult(context=CONTEXT_SEPARATOR.join(parts), sources=sources)

    @log_performance(threshold_ms=1000.0)
    def retrieve(self, question: str, top_k: Optional[int] = None,
                 hints: Optional[Mapping[str, Any]] = None) -> RetrievalResult:
        question = (question or "").strip()
        if not question:
            return RetrievalResult()

        top_k = top_k or self.settings.top_k
        start = time.time()
        try:
            category_hint = infer_category_hint(question, self.settings.category_synonyms)
            candidates = self.candidates(question, category_hint)
            if not candidates:
                record_retrieval(time.time() - start, 0)
                return RetrievalResult()

            ranked = self.rank(question, candidates, category_hint, hints)
            result = self.assemble(ranked, build_constraints(question), top_k)
        except Exception as e:
            record_retrieval(time.time() - start, 0, error=type(e).__name__)
            raise

        record_retrieval(time.time() - start, len(candidates))
        logger.info(
            f"Retrieved {len(result.sources)} sources from {len(candidates)} candidates "
            f"(category={category_hint})"
        )
        return result
