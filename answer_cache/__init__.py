"""Answer cache for pagewise."""

from .cache import AnswerCache, CacheEntry, CachedAnswer
from .normalizer import normalize_question, question_hash
from .repository import CacheRepository
from .sources import decode_sources, encode_sources, parse_sources_input

__all__ = [
    'AnswerCache',
    'CacheEntry',
    'CachedAnswer',
    'CacheRepository',
    'normalize_question',
    'question_hash',
    'encode_sources',
    'decode_sources',
    'parse_sources_input',
]
