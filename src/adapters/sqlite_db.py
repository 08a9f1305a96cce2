"""
SQLite adapter helpers.

Shared connection handling for the SQLite-backed stores. Designed to
stay portable to other SQL engines (standard SQL, TEXT timestamps).
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from datetime import UTC, datetime
from typing import Any

from src.components.metrics import StorageUnavailableError

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def format_dt(dt: datetime) -> str:
    """Fixed-width UTC ISO string, safe for lexical comparison."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


# -----------------------------------------------------------------------------
# Base SQLite Store
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """
    Base class for SQLite stores.

    Opens a connection per operation unless an external connection is
    supplied (tests, in-memory databases). Connections run in autocommit
    mode so writers can open ``BEGIN IMMEDIATE`` explicitly.
    """

    def __init__(
        self,
        db_path: str,
        connection: sqlite3.Connection | None = None,
        timeout_seconds: float = 5.0,
    ):
        self.db_path = db_path
        self._external_conn = connection
        self._timeout = timeout_seconds
        # A shared external connection cannot nest transactions
        self._external_lock = threading.RLock()

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path, timeout=self._timeout, isolation_level=None)
        conn.row_factory = dict_factory
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Connection scope mapping driver errors to StorageUnavailableError."""
        lock = self._external_lock if self._external_conn is not None else nullcontext()
        with lock:
            try:
                conn = self._get_conn()
            except sqlite3.Error as e:
                raise StorageUnavailableError(f"Cannot open {self.db_path}: {e}") from e
            try:
                yield conn
            except sqlite3.Error as e:
                raise StorageUnavailableError(str(e)) from e
            finally:
                if self._should_close():
                    conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """``BEGIN IMMEDIATE`` write transaction; rolls back on error."""
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

