"""
SQLite-backed counter, ephemeral and settings stores.

Key behaviors:
- Counter values are stored as TEXT so revenue keeps Decimal precision
- Increments read-modify-write inside ``BEGIN IMMEDIATE`` (one writer
  at a time per database, so no increment is lost)
- Ephemeral values are JSON with an explicit ``expires_at``; NULL marks
  an orphan left behind by a lost expiry
- Driver errors surface as StorageUnavailableError
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from typing import Any

from src.adapters.sqlite.migrator import DB_SCHEMA_VERSION, LAST_TABLE_CHECK, TrackerState
from src.adapters.sqlite_db import SQLiteRepoBase, format_dt, parse_dt
from src.components.metrics import (
    LIFETIME,
    MetricKey,
    MetricValue,
    StorageUnavailableError,
    coerce_value,
    parse_bucket,
    validate_delta,
    zero_for,
)
from src.core.services.ephemeral import NAMESPACE

logger = logging.getLogger(__name__)


def _like_prefix(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"


# -----------------------------------------------------------------------------
# Metric counters
# -----------------------------------------------------------------------------


class SQLiteMetricsStore(SQLiteRepoBase):
    """SQLite implementation of MetricsStorePort."""

    def increment(self, key: MetricKey, delta: MetricValue = 1) -> MetricValue:
        amount = validate_delta(key, delta)
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT value FROM metric_counters
                WHERE entity_id = ? AND metric_name = ? AND bucket = ?
                """,
                (key.entity_id, key.metric_name, key.bucket_label),
            ).fetchone()
            current = (
                coerce_value(key.metric_name, row["value"]) if row else zero_for(key.metric_name)
            )
            updated = current + amount
            conn.execute(
                """
                INSERT INTO metric_counters (entity_id, metric_name, bucket, value, updated_at)
                VALUES (?, ?, ?, ?, datetime('now'))
                ON CONFLICT (entity_id, metric_name, bucket)
                DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key.entity_id, key.metric_name, key.bucket_label, str(updated)),
            )
        return updated

    def get(self, key: MetricKey) -> MetricValue:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT value FROM metric_counters
                WHERE entity_id = ? AND metric_name = ? AND bucket = ?
                """,
                (key.entity_id, key.metric_name, key.bucket_label),
            ).fetchone()
        if row is None:
            return zero_for(key.metric_name)
        return coerce_value(key.metric_name, row["value"])

    def delete_bucket(self, entity_id: str, metric_name: str, day: date) -> bool:
        if not isinstance(day, date):
            raise ValueError("Only daily buckets can be deleted")
        key = MetricKey.daily(entity_id, metric_name, day)
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM metric_counters
                WHERE entity_id = ? AND metric_name = ? AND bucket = ? AND bucket != ?
                """,
                (key.entity_id, key.metric_name, key.bucket_label, LIFETIME),
            )
            return cursor.rowcount > 0

    def list_entities(self, offset: int = 0, limit: int = 100) -> list[str]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT DISTINCT entity_id FROM metric_counters
                ORDER BY entity_id LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()
        return [r["entity_id"] for r in rows]

    def list_daily_keys(
        self,
        entity_id: str,
        before: date | None = None,
        limit: int = 100,
    ) -> list[MetricKey]:
        sql = "SELECT metric_name, bucket FROM metric_counters WHERE entity_id = ? AND bucket != ?"
        params: list[Any] = [entity_id, LIFETIME]
        if before is not None:
            sql += " AND bucket < ?"
            params.append(before.isoformat())
        sql += " ORDER BY bucket, metric_name LIMIT ?"
        params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        keys: list[MetricKey] = []
        for row in rows:
            try:
                keys.append(MetricKey(entity_id, row["metric_name"], parse_bucket(row["bucket"])))
            except ValueError:
                logger.warning("Ignoring malformed counter row %s/%s", entity_id, row)
        return keys

    def get_daily(
        self,
        entity_id: str,
        metric_name: str,
        start: date,
        end: date,
    ) -> dict[date, MetricValue]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT bucket, value FROM metric_counters
                WHERE entity_id = ? AND metric_name = ? AND bucket != ?
                  AND bucket >= ? AND bucket <= ?
                """,
                (entity_id, metric_name, LIFETIME, start.isoformat(), end.isoformat()),
            ).fetchall()
        return {
            date.fromisoformat(r["bucket"]): coerce_value(metric_name, r["value"]) for r in rows
        }


# -----------------------------------------------------------------------------
# Ephemeral records
# -----------------------------------------------------------------------------


class SQLiteEphemeralStore(SQLiteRepoBase):
    """SQLite implementation of EphemeralStorePort."""

    def get(self, key: str, now: datetime) -> Any | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT value, expires_at FROM ephemeral_records WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        expires_at = parse_dt(row["expires_at"])
        # Expired but not yet purged reads as absent; so do orphans
        if expires_at is None or now >= expires_at:
            return None
        return json.loads(row["value"])

    def put(self, key: str, value: Any, ttl_seconds: int, now: datetime) -> None:
        expires_at = format_dt(now + timedelta(seconds=ttl_seconds))
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO ephemeral_records (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT (key) DO UPDATE SET
                    value = excluded.value, expires_at = excluded.expires_at
                """,
                (key, json.dumps(value), expires_at),
            )

    def put_orphan(self, key: str, value: Any) -> None:
        """Insert a record with no expiry."""
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO ephemeral_records (key, value, expires_at) "
                "VALUES (?, ?, NULL)",
                (key, json.dumps(value)),
            )

    def delete(self, key: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM ephemeral_records WHERE key = ?", (key,))
            return cursor.rowcount > 0

    def purge_expired(self, now: datetime, prefix: str = NAMESPACE, limit: int = 1000) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM ephemeral_records WHERE key IN (
                    SELECT key FROM ephemeral_records
                    WHERE key LIKE ? ESCAPE '\\'
                      AND expires_at IS NOT NULL AND expires_at <= ?
                    LIMIT ?
                )
                """,
                (_like_prefix(prefix), format_dt(now), limit),
            )
            return cursor.rowcount

    def purge_orphans(self, prefix: str = NAMESPACE, limit: int = 1000) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM ephemeral_records WHERE key IN (
                    SELECT key FROM ephemeral_records
                    WHERE key LIKE ? ESCAPE '\\' AND expires_at IS NULL
                    LIMIT ?
                )
                """,
                (_like_prefix(prefix), limit),
            )
            return cursor.rowcount

    def clear_prefix(self, prefix: str = NAMESPACE) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM ephemeral_records WHERE key LIKE ? ESCAPE '\\'",
                (_like_prefix(prefix),),
            )
            return cursor.rowcount


# -----------------------------------------------------------------------------
# Tracker settings
# -----------------------------------------------------------------------------


class SQLiteSettingsStore(SQLiteRepoBase):
    """Persists TrackerState in ``tracker_settings``."""

    def load_state(self) -> TrackerState:
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    "SELECT name, value FROM tracker_settings WHERE name IN (?, ?)",
                    (DB_SCHEMA_VERSION, LAST_TABLE_CHECK),
                ).fetchall()
        except StorageUnavailableError as e:
            # Table missing before the first migration
            logger.debug("Tracker settings unavailable: %s", e)
            return TrackerState()

        values = {r["name"]: r["value"] for r in rows}
        return TrackerState(
            db_schema_version=values.get(DB_SCHEMA_VERSION),
            last_table_check_timestamp=parse_dt(values.get(LAST_TABLE_CHECK)),
        )

    def save_state(self, state: TrackerState) -> None:
        items = []
        if state.db_schema_version is not None:
            items.append((DB_SCHEMA_VERSION, state.db_schema_version))
        if state.last_table_check_timestamp is not None:
            items.append((LAST_TABLE_CHECK, format_dt(state.last_table_check_timestamp)))

        with self._transaction() as conn:
            conn.executemany(
                """
                INSERT INTO tracker_settings (name, value) VALUES (?, ?)
                ON CONFLICT (name) DO UPDATE SET value = excluded.value
                """,
                items,
            )
