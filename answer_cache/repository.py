"""SQLite persistence for the answer cache."""

import sqlite3
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from config.database import Database
from indexer.sqlite_adapter import utc_now

logger = logging.getLogger(__name__)

FUZZY_CANDIDATES = 25
LENGTH_WINDOW = 2
DELETE_BATCH = 500


@dataclass
class CacheRow:
    id: int
    question: str
    normalized_question: str
    normalized_hash: str
    answer: str
    sources: str
    created_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'CacheRow':
        return cls(
            id=row['id'],
            question=row['question'],
            normalized_question=row['normalized_question'] or '',
            normalized_hash=row['normalized_hash'],
            answer=row['answer'],
            sources=row['sources'] or '',
            created_at=row['created_at'],
        )


_COLUMNS = "id, question, normalized_question, normalized_hash, answer, sources, created_at"


class CacheRepository:
    """Row-level access to the ``answer_cache`` table."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def conn(self) -> sqlite3.Connection:
        return self.db.connection()

    def find_by_hash(self, normalized_hash: str) -> Optional[CacheRow]:
        with self.db.lock:
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM answer_cache WHERE normalized_hash = ? ORDER BY id DESC LIMIT 1",
                (normalized_hash,),
            ).fetchone()
        return CacheRow.from_row(row) if row else None

    def candidates_by_length(self, length: int) -> List[CacheRow]:
        """Most recent rows whose normalized question is within two characters of ``length``."""
        low = max(1, length - LENGTH_WINDOW)
        high = length + LENGTH_WINDOW
        with self.db.lock:
            rows = self.conn.execute(
                f"""
                SELECT {_COLUMNS} FROM answer_cache
                WHERE length(normalized_question) BETWEEN ? AND ?
                ORDER BY id DESC LIMIT ?
                """,
                (low, high, FUZZY_CANDIDATES),
            ).fetchall()
        return [CacheRow.from_row(r) for r in rows]

    def upsert(self, question: str, normalized: str, normalized_hash: str,
               answer: str, sources: str) -> int:
        """Update the row with the same hash, or insert a new one; returns its id."""
        now = utc_now()
        with self.db.lock, self.conn:
            existing = self.conn.execute(
                "SELECT id FROM answer_cache WHERE normalized_hash = ? ORDER BY id DESC LIMIT 1",
                (normalized_hash,),
            ).fetchone()
            if existing:
                self.conn.execute(
                    """
                    UPDATE answer_cache
                    SET question = ?, normalized_question = ?, answer = ?, sources = ?, created_at = ?
                    WHERE id = ?
                    """,
                    (question, normalized, answer, sources, now, existing['id']),
                )
                return existing['id']

            cursor = self.conn.execute(
                """
                INSERT INTO answer_cache (question, normalized_question, normalized_hash,
                                          answer, sources, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (question, normalized, normalized_hash, answer, sources, now),
            )
            return cursor.lastrowid

    def rows_with_sources(self) -> List[CacheRow]:
        with self.db.lock:
            rows = self.conn.execute(
                f"SELECT {_COLUMNS} FROM answer_cache WHERE sources <> '' ORDER BY id"
            ).fetchall()
        return [CacheRow.from_row(r) for r in rows]

    def delete_ids(self, ids: Iterable[int]) -> int:
        ids = sorted({int(i) for i in ids})
        if not ids:
            return 0
        deleted = 0
        with self.db.lock, self.conn:
            for start in range(0, len(ids), DELETE_BATCH):
                batch = ids[start:start + DELETE_BATCH]
                placeholders = ",".join("?" * len(batch))
                cursor = self.conn.execute(
                    f"DELETE FROM answer_cache WHERE id IN ({placeholders})", batch
                )
                deleted += cursor.rowcount
        return deleted

    def delete_all(self) -> int:
        with self.db.lock, self.conn:
            cursor = self.conn.execute("DELETE FROM answer_cache")
        return cursor.rowcount

    def get(self, entry_id: int) -> Optional[CacheRow]:
        with self.db.lock:
            row = self.conn.execute(
                f"SELECT {_COLUMNS} FROM answer_cache WHERE id = ?", (entry_id,)
            ).fetchone()
        return CacheRow.from_row(row) if row else None

    def list_rows(self, limit: int = 50, offset: int = 0) -> List[CacheRow]:
        with self.db.lock:
            rows = self.conn.execute(
                f"SELECT {_COLUMNS} FROM answer_cache ORDER BY id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [CacheRow.from_row(r) for r in rows]

    def count(self) -> int:
        with self.db.lock:
            return self.conn.execute("SELECT COUNT(*) FROM answer_cache").fetchone()[0]

    def update(self, entry_id: int, answer: str, sources: str) -> bool:
        with self.db.lock, self.conn:
            cursor = self.conn.execute(
                "UPDATE answer_cache SET answer = ?, sources = ? WHERE id = ?",
                (answer, sources, entry_id),
            )
        return cursor.rowcount > 0
