"""Persistent crawl queue with a cursor and a lease.

The queue, its cursor and bookkeeping live in the ``kv_store`` table so a
worker run can stop at any URL and the next run resumes at the cursor.
A lease with a TTL keeps overlapping worker runs from processing the same
batch; a crashed worker's lease simply expires.
"""

import json
import time
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from config.database import Database
from observability.metrics import record_index_error

logger = logging.getLogger(__name__)

QUEUE_KEY = "crawl_queue"
POS_KEY = "crawl_queue_pos"
TOTAL_KEY = "crawl_queue_total"
LASTMOD_KEY = "crawl_queue_lastmod"
LOCK_KEY = "crawl_lock"
LAST_DONE_KEY = "crawl_last_done"
LAST_ERROR_KEY = "crawl_last_error"

DEFAULT_LEASE_TTL = 300

# processor(url, lastmod) -> True inserted / None skipped / False fetch failure
Processor = Callable[[str, Optional[str]], Optional[bool]]


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class KeyValueStore:
    """JSON values in the ``kv_store`` table with optional expiry."""

    def __init__(self, db: Database, clock: Callable[[], float] = time.time):
        self.db = db
        self.clock = clock

    @property
    def conn(self):
        return self.db.connection()

    def _expires_at(self, ttl: Optional[float]) -> Optional[float]:
        return self.clock() + ttl if ttl else None

    def get(self, key: str, default: Any = None) -> Any:
        with self.db.lock:
            row = self.conn.execute(
                "SELECT value, expires_at FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        if row["expires_at"] is not None and row["expires_at"] <= self.clock():
            return default
        try:
            return json.loads(row["value"])
        except (TypeError, ValueError):
            logger.warning(f"Discarding undecodable value for {key}")
            return default

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self.db.lock, self.conn:
            self.conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), self._expires_at(ttl)),
            )

    def add(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Insert only when the key is absent or expired; True when inserted."""
        now = self.clock()
        with self.db.lock, self.conn:
            self.conn.execute(
                "DELETE FROM kv_store WHERE key = ? AND expires_at IS NOT NULL AND expires_at <= ?",
                (key, now),
            )
            cursor = self.conn.execute(
                "INSERT OR IGNORE INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), self._expires_at(ttl)),
            )
        return cursor.rowcount == 1

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        with self.db.lock, self.conn:
            self.conn.executemany("DELETE FROM kv_store WHERE key = ?", [(k,) for k in keys])


@dataclass(frozen=True)
class CrawlState:
    """Snapshot of the queue: the URL list and how far the worker got."""
    urls: Tuple[str, ...]
    cursor: int = 0
    total: int = 0

    def __post_init__(self):
        if not 0 <= self.cursor <= self.total <= len(self.urls):
            raise ValueError(
                f"Invalid crawl state: cursor={self.cursor} total={self.total} urls={len(self.urls)}"
            )

    @classmethod
    def restore(cls, urls: Iterable[str], cursor: Any, total: Any) -> "CrawlState":
        """Build a state from stored values, clamping anything out of range."""
        urls = tuple(str(u) for u in (urls or []))
        try:
            total = int(total or 0)
        except (TypeError, ValueError):
            total = 0
        try:
            cursor = int(cursor or 0)
        except (TypeError, ValueError):
            cursor = 0
        if total <= 0 or total > len(urls):
            total = len(urls)
        cursor = min(max(cursor, 0), total)
        return cls(urls=urls, cursor=cursor, total=total)

    @property
    def done(self) -> bool:
        return self.cursor >= self.total

    @property
    def remaining(self) -> int:
        return self.total - self.cursor

    def next_batch(self, size: int) -> Tuple[str, ...]:
        return self.urls[self.cursor:min(self.total, self.cursor + max(1, size))]


@dataclass
class BatchResult:
    """Outcome of one worker run."""
    acquired: bool
    processed: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: int = 0
    remaining: int = 0

    @property
    def done(self) -> bool:
        return self.acquired and self.remaining == 0


class CrawlQueue:
    """Cursor-based work queue backed by :class:`KeyValueStore`."""

    def __init__(self, store: KeyValueStore, lease_ttl: int = DEFAULT_LEASE_TTL,
                 throttle_seconds: float = 0.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.store = store
        self.lease_ttl = lease_ttl
        self.throttle_seconds = throttle_seconds
        self.sleep = sleep

    # -- queue contents -----------------------------------------------------

    def enqueue(self, urls: Iterable[str], lastmods: Optional[Dict[str, Optional[str]]] = None) -> CrawlState:
        """Replace the queue with ``urls`` (trimmed, de-duplicated) at cursor 0."""
        unique = tuple(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
        hints = {u: lastmods[u] for u in unique if lastmods and lastmods.get(u)}

        self.store.set(QUEUE_KEY, list(unique))
        self.store.set(POS_KEY, 0)
        self.store.set(TOTAL_KEY, len(unique))
        self.store.set(LASTMOD_KEY, hints)
        logger.info(f"Queued {len(unique)} URLs for indexing")
        return CrawlState(urls=unique, cursor=0, total=len(unique))

    def clear(self) -> None:
        self.store.delete(QUEUE_KEY, POS_KEY, TOTAL_KEY, LASTMOD_KEY)

    def load_state(self) -> CrawlState:
        state = CrawlState.restore(
            self.store.get(QUEUE_KEY, []),
            self.store.get(POS_KEY, 0),
            self.store.get(TOTAL_KEY, 0),
        )
        if self.store.get(TOTAL_KEY, 0) != state.total and state.urls:
            self.store.set(TOTAL_KEY, state.total)
        return state

    # -- lease --------------------------------------------------------------

    def acquire_lease(self) -> bool:
        return self.store.add(LOCK_KEY, utc_now(), ttl=self.lease_ttl)

    def release_lease(self) -> None:
        self.store.delete(LOCK_KEY)

    def lease_held(self) -> bool:
        return self.store.get(LOCK_KEY) is not None

    # -- worker -------------------------------------------------------------

    def _finish(self) -> None:
        self.clear()
        self.store.set(LAST_DONE_KEY, utc_now())
        logger.info("Crawl queue finished")

    def _record_error(self, url: str, message: str) -> None:
        self.store.set(LAST_ERROR_KEY, f"[{utc_now()}] {url} :: {message}")

    def work_batch(self, batch_size: int, processor: Processor,
                   reschedule: Optional[Callable[[], None]] = None) -> BatchResult:
        """Process up to ``batch_size`` URLs from the cursor.

        Lease contention is a silent no-op. The cursor is persisted after
        every URL so a crash loses at most the URL in flight.
        """
        if not self.acquire_lease():
            logger.debug("Crawl lease held by another worker, skipping run")
            return BatchResult(acquired=False)

        result = BatchResult(acquired=True)
        try:
            state = self.load_state()
            if state.done:
                self._finish()
                return result

            lastmods = self.store.get(LASTMOD_KEY, {}) or {}
            cursor = state.cursor
            batch = state.next_batch(batch_size)

            for index, url in enumerate(batch):
                try:
                    outcome = processor(url, lastmods.get(url))
                except Exception as e:
                    logger.error(f"Index error for {url}: {e}", exc_info=True)
                    self._record_error(url, str(e))
                    record_index_error(type(e).__name__)
                    result.failed += 1
                else:
                    if outcome is True:
                        result.inserted += 1
                    elif outcome is False:
                        self._record_error(url, "fetch failed")
                        result.failed += 1
                    else:
                        result.skipped += 1

                cursor += 1
                result.processed += 1
                self.store.set(POS_KEY, cursor)

                if self.throttle_seconds > 0 and index < len(batch) - 1:
                    self.sleep(self.throttle_seconds)

            result.remaining = state.total - cursor
            if result.remaining > 0:
                if reschedule is not None:
                    reschedule()
            else:
                self._finish()

            logger.info(
                f"Crawl batch: processed={result.processed} inserted={result.inserted} "
                f"skipped={result.skipped} failed={result.failed} remaining={result.remaining}"
            )
            return result
        finally:
            self.release_lease()

    def status(self) -> Dict[str, Any]:
        state = self.load_state()
        return {
            "cursor": state.cursor,
            "total": state.total,
            "remaining": state.remaining,
            "lease_held": self.lease_held(),
            "last_done": self.store.get(LAST_DONE_KEY),
            "last_error": self.store.get(LAST_ERROR_KEY),
        }
