"""
SQLite Client — raw database connection management.
One connection per backend instance; callers serialize access.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections import deque
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

from capability_catalog.errors import DatabaseError

logger = logging.getLogger(__name__)

_QUERY_WINDOW = 100


class SQLiteClient:
    """
    Thin wrapper around sqlite3.
    Writable connections get foreign keys and the configured journal mode;
    read-only connections open the file through a `mode=ro` URI.
    """

    def __init__(self, db_path: Path, read_only: bool = False, journal_mode: str = "WAL"):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self.journal_mode = journal_mode
        self._conn: Optional[sqlite3.Connection] = None
        self.total_queries = 0
        self.last_query_time = 0.0
        self._query_times: deque[float] = deque(maxlen=_QUERY_WINDOW)

    # ── Connection ───────────────────────────────────────

    def connect(self) -> sqlite3.Connection:
        """Open the connection (no-op when already open)."""
        if self._conn is not None:
            return self._conn

        try:
            if self.read_only:
                uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
                conn = sqlite3.connect(uri, uri=True)
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path))
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            if self.read_only:
                conn.execute("PRAGMA query_only = ON")
            else:
                conn.execute(f"PRAGMA journal_mode = {self.journal_mode}")
                conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA cache_size = 10000")
            conn.execute("PRAGMA temp_store = MEMORY")
        except sqlite3.Error as e:
            raise DatabaseError(f"Connection failed for {self.db_path}: {e}") from e

        self._conn = conn
        logger.info(f"Opened SQLite database ({'read-only' if self.read_only else 'read-write'}): {self.db_path}")
        return conn

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        """Return the open connection or fail with DatabaseError."""
        if self._conn is None:
            raise DatabaseError("Database not connected")
        return self._conn

    def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info(f"SQLite connection closed: {self.db_path}")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back on any exception."""
        conn = self.connection
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise DatabaseError(f"Transaction failed: {e}") from e

    # ── Queries ──────────────────────────────────────────

    def execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        """Run one statement; commit is left to the caller's transaction."""
        t0 = time.perf_counter()
        try:
            return self.connection.execute(sql, tuple(params))
        except sqlite3.Error as e:
            raise DatabaseError(f"SQL error: {e}") from e
        finally:
            self._record_query_time(time.perf_counter() - t0)

    def executescript(self, script: str) -> None:
        try:
            self.connection.executescript(script)
        except sqlite3.Error as e:
            raise DatabaseError(f"SQL error: {e}") from e

    def fetch_all(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def fetch_one(self, sql: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetch_scalar(self, sql: str, params: Iterable[Any] = ()) -> Any:
        row = self.fetch_one(sql, params)
        return row[0] if row is not None else None

    # ── Stats ────────────────────────────────────────────

    def _record_query_time(self, elapsed: float) -> None:
        self.total_queries += 1
        self.last_query_time = elapsed
        self._query_times.append(elapsed)

    @property
    def average_query_time(self) -> float:
        if not self._query_times:
            return 0.0
        return sum(self._query_times) / len(self._query_times)

    def stats(self) -> dict[str, Any]:
        return {
            "total_queries": self.total_queries,
            "average_query_time": self.average_query_time,
            "last_query_time": self.last_query_time,
        }
