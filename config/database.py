"""Database configuration and connection factory for pagewise.

A single SQLite file holds the chunk index, the answer cache and the
crawl queue state.
"""

import os
import sqlite3
import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parents[1] / "indexer"


class DatabaseConfig(BaseModel):
    """Database configuration."""
    sqlite_path: str = Field(default="data/pagewise.db", description="SQLite database path")
    enable_fts: bool = Field(default=True, description="Create the FTS5 index when available")
    timeout: float = Field(default=30.0, description="Busy timeout in seconds")

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Create configuration from environment variables."""
        return cls(
            sqlite_path=os.getenv('PAGEWISE_SQLITE_PATH', 'data/pagewise.db'),
            enable_fts=os.getenv('PAGEWISE_ENABLE_FTS', '1').lower() not in ('0', 'false', 'no'),
            timeout=float(os.getenv('PAGEWISE_DB_TIMEOUT', '30')),
        )


class Database:
    """Owns the SQLite connection and reports FTS5 availability."""

    def __init__(self, config: Optional[DatabaseConfig] = None):
        self.config = config or DatabaseConfig.from_env()
        self.conn: Optional[sqlite3.Connection] = None
        self.fts_enabled = False
        self.lock = threading.RLock()

    def initialize(self) -> 'Database':
        """Open the connection and ensure the schema exists."""
        path = self.config.sqlite_path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = sqlite3.connect(path, timeout=self.config.timeout, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.executescript((SCHEMA_DIR / "schema.sql").read_text(encoding="utf-8"))
            self.conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize SQLite at {path}: {e}")
            raise

        if self.config.enable_fts:
            try:
                self.conn.executescript((SCHEMA_DIR / "fts_schema.sql").read_text(encoding="utf-8"))
                self.conn.commit()
                self.fts_enabled = True
            except sqlite3.OperationalError as e:
                logger.warning(f"FTS5 unavailable, falling back to substring search: {e}")
                self.fts_enabled = False

        logger.info(f"SQLite database initialized: {path} (fts={self.fts_enabled})")
        return self

    def close(self):
        """Close the connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("SQLite connection closed")

    def connection(self) -> sqlite3.Connection:
        if self.conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self.conn


def connect(config: Optional[DatabaseConfig] = None) -> Database:
    """Open and initialize a database."""
    return Database(config).initialize()
