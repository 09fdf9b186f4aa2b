"""Question answering on top of retrieval and the answer cache."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol

from answer_cache.cache import AnswerCache
from retrieval.retriever import HybridRetriever, Source

logger = logging.getLogger(__name__)


class AnswerGenerator(Protocol):
    """Turns a question and retrieved context into an answer."""

    def __call__(self, question: str, context: str) -> str:
        ...


class AnswerGeneratorMissing(RuntimeError):
    """Raised when context was found but no generator is configured."""


@dataclass
class Answer:
    answer: str
    sources: List[Source] = field(default_factory=list)
    cached: bool = False
    match: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
            "cached": self.cached,
            "match": self.match,
        }


class AnswerService:
    def __init__(self, retriever: HybridRetriever, cache: Optional[AnswerCache],
                 generator: Optional[AnswerGenerator], fallback_answer: str):
        self.retriever = retriever
        self.cache = cache
        self.generator = generator
        self.fallback_answer = fallback_answer

    def answer(self, question: str, top_k: Optional[int] = None,
               hints: Optional[Mapping[str, Any]] = None) -> Answer:
        """Cached answer if any, else retrieve, generate and cache.

        Fallback answers (no context found) are never cached.
        """
        question = (question or "").strip()
        if not question:
            return Answer(self.fallback_answer)

        if self.cache is not None:
            hit = self.cache.find(question)
            if hit is not None:
                return Answer(hit.answer, hit.sources, cached=True, match=hit.match)

        result = self.retriever.retrieve(question, top_k=top_k, hints=hints)
        if result.empty:
            logger.info("No context found; returning fallback answer")
            return Answer(self.fallback_answer)

        if self.generator is None:
            raise AnswerGeneratorMissing("No answer generator configured")

        text = (self.generator(question, result.context) or "").strip()
        if not text:
            return Answer(self.fallback_answer)

        if self.cache is not None:
            self.cache.store(question, text, result.sources)
        return Answer(text, result.sources)
