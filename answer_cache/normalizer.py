"""Question normalization for cache keys."""

import hashlib
import html
import re

from bs4 import BeautifulSoup

_PUNCTUATION = re.compile(r'[^\w\s]+|_+')
_WHITESPACE = re.compile(r'\s+')


def normalize_question(question: str) -> str:
    """Strip markup, decode entities, drop punctuation, collapse spaces, lower-case."""
    if not question:
        return ''
    text = BeautifulSoup(question, 'html.parser').get_text(' ')
    text = html.unescape(text)
    text = _PUNCTUATION.sub(' ', text)
    text = _WHITESPACE.sub(' ', text).strip()
    return text.lower()


def question_hash(normalized: str) -> str:
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()
