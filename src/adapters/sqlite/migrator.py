"""
SQLite schema migrations and the periodic table check.

Migrations are ``.sql`` files applied in filename order. Everything
before a ``-- Down`` marker is the up script.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "migrations")

SCHEMA_VERSION = "1.0.1"
TABLE_CHECK_INTERVAL = timedelta(hours=24)

DB_SCHEMA_VERSION = "db_schema_version"
LAST_TABLE_CHECK = "last_table_check_timestamp"


def parse_version(value: str | None) -> tuple[int, ...]:
    """Dotted version string as a comparable tuple; junk reads as 0."""
    if not value:
        return (0,)
    parts = []
    for part in value.split("."):
        try:
            parts.append(int(part))
        except ValueError:
            parts.append(0)
    return tuple(parts)


class SQLiteMigrator:
    def __init__(self, db_path: str, migrations_dir: str = DEFAULT_MIGRATIONS_DIR):
        self.db_path = db_path
        self.migrations_dir = migrations_dir

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _ensure_migration_table(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS _migrations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                filename TEXT UNIQUE NOT NULL,
                applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
            );
        """)

    def _get_applied_migrations(self, conn: sqlite3.Connection) -> set[str]:
        cursor = conn.execute("SELECT filename FROM _migrations")
        return {row[0] for row in cursor.fetchall()}

    def pending_migrations(self) -> list[str]:
        """Migration files not yet applied."""
        conn = self._get_connection()
        try:
            self._ensure_migration_table(conn)
            applied = self._get_applied_migrations(conn)
        finally:
            conn.close()
        return [f for f in self._migration_files() if f not in applied]

    def run_migrations(self) -> list[str]:
        """Apply all pending migrations. Returns the filenames applied."""
        conn = self._get_connection()
        applied_now: list[str] = []
        try:
            self._ensure_migration_table(conn)
            applied = self._get_applied_migrations(conn)

            for filename in self._migration_files():
                if filename not in applied:
                    logger.info("Applying migration: %s", filename)
                    self._apply_migration(conn, filename)
                    applied_now.append(filename)

            logger.debug("All migrations applied")
        finally:
            conn.close()
        return applied_now

    def _migration_files(self) -> list[str]:
        return sorted(f for f in os.listdir(self.migrations_dir) if f.endswith(".sql"))

    def _read_up_script(self, filename: str) -> str:
        path = os.path.join(self.migrations_dir, filename)
        with open(path) as f:
            content = f.read()
        return content.split("-- Down")[0]

    def _apply_migration(self, conn: sqlite3.Connection, filename: str) -> None:
        script = self._read_up_script(filename)
        try:
            conn.executescript(script)
            conn.execute("INSERT INTO _migrations (filename) VALUES (?)", (filename,))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise RuntimeError(f"Migration {filename} failed: {e}") from e


# --- Tracker State ---


@dataclass(frozen=True)
class TrackerState:
    """Process-wide schema bookkeeping."""

    db_schema_version: str | None = None
    last_table_check_timestamp: datetime | None = None

    def check_due(self, now: datetime, interval: timedelta = TABLE_CHECK_INTERVAL) -> bool:
        if self.last_table_check_timestamp is None:
            return True
        return now - self.last_table_check_timestamp >= interval

    def is_behind(self, target: str = SCHEMA_VERSION) -> bool:
        return parse_version(self.db_schema_version) < parse_version(target)


class SettingsStorePort(Protocol):
    """Persistence for TrackerState."""

    def load_state(self) -> TrackerState: ...

    def save_state(self, state: TrackerState) -> None: ...


class SchemaChecker:
    """
    Keeps the schema current without touching the DB on every request.

    Key behaviors:
    - ``maybe_check`` does nothing until the check interval has elapsed
    - A due check applies pending migrations when the recorded schema
      version is behind or files are pending
    - ``force_check`` runs regardless of the interval (activation)
    """

    def __init__(
        self,
        migrator: SQLiteMigrator,
        settings: SettingsStorePort,
        target_version: str = SCHEMA_VERSION,
        interval: timedelta = TABLE_CHECK_INTERVAL,
    ) -> None:
        self._migrator = migrator
        self._settings = settings
        self._target = target_version
        self._interval = interval

    def state(self) -> TrackerState:
        return self._settings.load_state()

    def maybe_check(self, now: datetime) -> bool:
        """Run the table check when due. Returns True when it ran."""
        if not self.state().check_due(now, self._interval):
            return False
        self.force_check(now)
        return True

    def force_check(self, now: datetime) -> TrackerState:
        state = self.state()
        if state.is_behind(self._target) or self._migrator.pending_migrations():
            logger.info(
                "Database tables need updating from version %s to %s",
                state.db_schema_version or "0",
                self._target,
            )
            self._migrator.run_migrations()

        new_state = TrackerState(
            db_schema_version=self._target,
            last_table_check_timestamp=now,
        )
        self._settings.save_state(new_state)
        return new_state
