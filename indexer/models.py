"""Typed records exchanged with the chunk store."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


def encode_embedding(vector) -> bytes:
    """Serialize an embedding for the BLOB column."""
    return np.asarray(vector, dtype=np.float32).tobytes()


def decode_embedding(data) -> Optional[np.ndarray]:
    """Deserialize a BLOB column; corrupt data maps to None."""
    if not data:
        return None
    try:
        vector = np.frombuffer(data, dtype=np.float32)
    except (TypeError, ValueError) as e:
        logger.warning(f"Discarding undecodable embedding: {e}")
        return None
    if vector.size == 0 or not np.all(np.isfinite(vector)):
        return None
    return vector


@dataclass
class Chunk:
    """One indexed slice of a document."""
    url: str
    category: str
    title: str
    chunk_index: int
    content: str
    content_hash: str
    embedding: Optional[np.ndarray] = None
    published_at: Optional[str] = None
    modified_at: Optional[str] = None
    updated_at: Optional[str] = None
    structured_metadata: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Chunk":
        return cls(
            id=row["id"],
            url=row["url"] or "",
            category=row["category"] or "",
            title=row["title"] or "",
            chunk_index=int(row["chunk_index"] or 0),
            content=row["content"] or "",
            content_hash=row["content_hash"] or "",
            embedding=decode_embedding(row["embedding"]),
            published_at=row["published_at"],
            modified_at=row["modified_at"],
            updated_at=row["updated_at"],
            structured_metadata=row["jsonld"],
        )


@dataclass
class Candidate:
    """A chunk returned by a lexical lookup, with the store's raw score."""
    chunk: Chunk
    lexical_score: float = 0.0
