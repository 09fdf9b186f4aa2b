"""Hybrid retrieval and ranking for pagewise."""

from .query import Constraints, DateHint, build_constraints, infer_category_hint, parse_date_hint
from .retriever import HybridRetriever, RetrievalResult, ScoredCandidate, Source

__all__ = [
    'Constraints',
    'DateHint',
    'build_constraints',
    'infer_category_hint',
    'parse_date_hint',
    'HybridRetriever',
    'RetrievalResult',
    'ScoredCandidate',
    'Source',
]
