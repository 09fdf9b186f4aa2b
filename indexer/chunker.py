from __future__ import annotations
import re
from typing import List

MIN_CHUNK_CHARS = 400
DEFAULT_CHUNK_CHARS = 1200

_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')


def normalize_whitespace(text: str) -> str:
    return re.sub(r'\s+', ' ', text or '').strip()


def split_sentences(text: str) -> List[str]:
    """Split on whitespace that follows sentence-final punctuation."""
    text = normalize_whitespace(text)
    if not text:
        return []
    return [s for s in _SENTENCE_BOUNDARY.split(text) if s]


def chunk_text(text: str, max_chars: int = DEFAULT_CHUNK_CHARS) -> List[str]:
    """Greedily pack whole sentences into chunks of at most ``max_chars``.

    The budget never drops below ``MIN_CHUNK_CHARS``. A sentence longer than
    the budget is emitted on its own rather than split mid-sentence, so
    ``' '.join(chunks)`` always reproduces the whitespace-collapsed input.
    """
    max_chars = max(MIN_CHUNK_CHARS, int(max_chars or 0))

    chunks: List[str] = []
    buf = ''
    for sentence in split_sentences(text):
        candidate = f'{buf} {sentence}' if buf else sentence
        if buf and len(candidate) > max_chars:
            chunks.append(buf)
            buf = sentence
        else:
            buf = candidate

    if buf:
        chunks.append(buf)
    return chunks
