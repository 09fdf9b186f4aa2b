"""SQLite chunk store for pagewise.

Holds every indexed chunk together with its embedding and serves the
lexical candidate lookups of the retriever (FTS5 bm25 when available,
substring matching otherwise).
"""

import re
import sqlite3
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Any

from config.database import Database
from .models import Candidate, Chunk, encode_embedding
from .url_keys import url_key, path_key

logger = logging.getLogger(__name__)

LOOKUP_BATCH = 500
MAX_QUERY_TOKENS = 32

CHUNK_COLUMNS = (
    "id, url, category, title, chunk_index, content, content_hash, embedding, "
    "published_at, modified_at, updated_at, jsonld"
)


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def query_tokens(query: str) -> List[str]:
    """Distinct word tokens of a free-text query, in order."""
    tokens = [t for t in re.findall(r"\w+", (query or "").lower()) if len(t) >= 2]
    return list(dict.fromkeys(tokens))[:MAX_QUERY_TOKENS]


def fts_query(tokens: Sequence[str]) -> str:
    """OR query of quoted tokens, safe for FTS5 MATCH."""
    return " OR ".join('"' + t.replace('"', '""') + '"' for t in tokens)


class ChunkStore:
    """Chunk persistence and lexical candidate search."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def conn(self) -> sqlite3.Connection:
        return self.db.connection()

    # -- writes -------------------------------------------------------------

    def insert_chunks(self, chunks: Sequence[Chunk]) -> int:
        """Insert chunk rows; returns the number written."""
        if not chunks:
            return 0

        now = utc_now()
        rows = [
            (
                c.url, url_key(c.url), path_key(c.url), c.category, c.title,
                c.chunk_index, c.content,
                encode_embedding(c.embedding) if c.embedding is not None else None,
                c.published_at, c.modified_at, c.updated_at or now,
                c.content_hash, c.structured_metadata,
            )
            for c in chunks
        ]

        with self.db.lock, self.conn:
            self.conn.executemany(
                """
                INSERT INTO chunks (url, url_key, path_key, category, title, chunk_index,
                                    content, embedding, published_at, modified_at,
                                    updated_at, content_hash, jsonld)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def replace_document(self, url: str, chunks: Sequence[Chunk],
                         delete_urls: Iterable[str] = ()) -> int:
        """Delete every stored variant of a document, then insert its chunks."""
        self.delete_document([url, *delete_urls])
        return self.insert_chunks(chunks)

    def delete_document(self, urls: Iterable[str], paths: Iterable[str] = ()) -> int:
        """Delete chunks by exact URL, normalized URL key and path key."""
        exact = list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
        ukeys = list(dict.fromkeys(k for k in (url_key(u) for u in exact) if k))
        pkeys = list(dict.fromkeys(k for k in (path_key(p) for p in paths) if k))

        conditions: List[str] = []
        params: List[str] = []
        for column, values in (("url", exact), ("url_key", ukeys), ("path_key", pkeys)):
            if values:
                conditions.append(f"{column} IN ({','.join('?' * len(values))})")
                params.extend(values)

        if not conditions:
            return 0

        with self.db.lock, self.conn:
            cursor = self.conn.execute(
                f"DELETE FROM chunks WHERE {' OR '.join(conditions)}", params
            )
        deleted = cursor.rowcount
        if deleted:
            logger.info(f"Deleted {deleted} chunks for {exact or pkeys}")
        return deleted

    # -- lookups ------------------------------------------------------------

    def get_document_state(self, url: str) -> Optional[Tuple[str, str]]:
        """``(content_hash, category)`` of a stored document, if any."""
        row = self.conn.execute(
            "SELECT content_hash, category FROM chunks WHERE url = ? ORDER BY chunk_index LIMIT 1",
            (url,),
        ).fetchone()
        if row is None:
            return None
        return row["content_hash"], row["category"]

    def existing_urls(self, urls: Sequence[str]) -> Set[str]:
        """Subset of ``urls`` that already has chunks."""
        found: Set[str] = set()
        unique = list(dict.fromkeys(urls))
        for start in range(0, len(unique), LOOKUP_BATCH):
            batch = unique[start:start + LOOKUP_BATCH]
            placeholders = ",".join("?" * len(batch))
            for row in self.conn.execute(
                f"SELECT DISTINCT url FROM chunks WHERE url IN ({placeholders})", batch
            ):
                found.add(row["url"])
        return found

    def get_chunks(self, url: str) -> List[Chunk]:
        rows = self.conn.execute(
            f"SELECT {CHUNK_COLUMNS} FROM chunks WHERE url = ? ORDER BY chunk_index",
            (url,),
        ).fetchall()
        return [Chunk.from_row(row) for row in rows]

    # -- search -------------------------------------------------------------

    def search_by_category(self, category: str, query: str, limit: int = 500) -> List[Candidate]:
        """Lexical candidates within one category.

        Without a usable text signal the category's newest chunks are listed.
        """
        tokens = query_tokens(query)
        if len((query or "").strip()) >= 3 and tokens:
            return self._search(tokens, limit, category=category)

        rows = self.conn.execute(
            f"SELECT {CHUNK_COLUMNS} FROM chunks WHERE category = ? ORDER BY id DESC LIMIT ?",
            (category, limit),
        ).fetchall()
        return [Candidate(Chunk.from_row(row), 0.0) for row in rows]

    def search(self, query: str, limit: int = 400) -> List[Candidate]:
        """Lexical candidates across the whole index."""
        tokens = query_tokens(query)
        if not tokens:
            return []
        return self._search(tokens, limit)

    def _search(self, tokens: Sequence[str], limit: int,
                category: Optional[str] = None) -> List[Candidate]:
        if self.db.fts_enabled:
            try:
                return self._search_fts(tokens, limit, category)
            except sqlite3.OperationalError as e:
                logger.warning(f"FTS query failed, using substring search: {e}")
        return self._search_like(tokens, limit, category)

    def _search_fts(self, tokens: Sequence[str], limit: int,
                    category: Optional[str]) -> List[Candidate]:
        columns = ", ".join(f"c.{col.strip()}" for col in CHUNK_COLUMNS.split(","))
        sql = f"""
            SELECT {columns}, -bm25(chunks_fts) AS lexical_score
            FROM chunks_fts
            JOIN chunks c ON c.id = chunks_fts.rowid
            WHERE chunks_fts MATCH ?
        """
        params: List[Any] = [fts_query(tokens)]
        if category is not None:
            sql += " AND c.category = ?"
            params.append(category)
        sql += " ORDER BY lexical_score DESC LIMIT ?"
        params.append(limit)

        rows = self.conn.execute(sql, params).fetchall()
        return [Candidate(Chunk.from_row(row), float(row["lexical_score"] or 0.0)) for row in rows]

    def _search_like(self, tokens: Sequence[str], limit: int,
                     category: Optional[str]) -> List[Candidate]:
        clauses = []
        params: List[Any] = []
        for token in tokens:
            pattern = "%" + token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
            clauses.append("(title LIKE ? ESCAPE '\\' OR content LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern])

        sql = f"SELECT {CHUNK_COLUMNS} FROM chunks WHERE ({' OR '.join(clauses)})"
        if category is not None:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        rows = self.conn.execute(sql, params).fetchall()
        return [Candidate(Chunk.from_row(row), 0.0) for row in rows]

    # -- monitoring ---------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Index statistics for monitoring."""
        row = self.conn.execute(
            """
            SELECT COUNT(*) AS chunk_count,
                   COUNT(DISTINCT url) AS document_count,
                   SUM(CASE WHEN embedding IS NOT NULL THEN 1 ELSE 0 END) AS embedded_chunk_count,
                   MAX(updated_at) AS last_updated
            FROM chunks
            """
        ).fetchone()
        return {
            'document_count': row["document_count"] or 0,
            'chunk_count': row["chunk_count"] or 0,
            'embedded_chunk_count': row["embedded_chunk_count"] or 0,
            'last_updated': row["last_updated"],
            'fts_enabled': self.db.fts_enabled,
        }
