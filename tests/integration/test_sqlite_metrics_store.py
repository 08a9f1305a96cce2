"""
Integration tests for the SQLite counter, ephemeral and settings stores.
"""

from __future__ import annotations

import sqlite3
import threading
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from src.adapters.sqlite.metrics_store import (
    SQLiteEphemeralStore,
    SQLiteMetricsStore,
    SQLiteSettingsStore,
)
from src.adapters.sqlite.migrator import TrackerState
from src.components.metrics import (
    REVENUE,
    VIEWS,
    MetricKey,
    StorageUnavailableError,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
DAY = date(2026, 3, 10)


@pytest.fixture
def metrics(migrated_db: str) -> SQLiteMetricsStore:
    return SQLiteMetricsStore(migrated_db)


@pytest.fixture
def ephemeral(migrated_db: str) -> SQLiteEphemeralStore:
    return SQLiteEphemeralStore(migrated_db)


class TestSQLiteMetricsStore:
    """Counter persistence."""

    def test_missing_counter_is_zero(self, metrics: SQLiteMetricsStore) -> None:
        assert metrics.get(MetricKey.lifetime("P1", VIEWS)) == 0
        assert metrics.get(MetricKey.lifetime("P1", REVENUE)) == Decimal("0")

    def test_increment_accumulates(self, metrics: SQLiteMetricsStore) -> None:
        key = MetricKey.daily("P1", VIEWS, DAY)
        assert metrics.increment(key) == 1
        assert metrics.increment(key, 2) == 3
        assert metrics.get(key) == 3
        assert isinstance(metrics.get(key), int)

    def test_revenue_keeps_precision(self, metrics: SQLiteMetricsStore) -> None:
        key = MetricKey.lifetime("P2", REVENUE)
        for _ in range(10):
            metrics.increment(key, Decimal("0.10"))
        assert metrics.get(key) == Decimal("1.00")

    def test_persists_across_instances(self, migrated_db: str) -> None:
        key = MetricKey.lifetime("P1", VIEWS)
        SQLiteMetricsStore(migrated_db).increment(key, 5)
        assert SQLiteMetricsStore(migrated_db).get(key) == 5

    def test_concurrent_increments_not_lost(self, migrated_db: str) -> None:
        key = MetricKey.lifetime("P1", VIEWS)
        workers, per_worker = 4, 25

        def bump() -> None:
            store = SQLiteMetricsStore(migrated_db, timeout_seconds=30)
            for _ in range(per_worker):
                store.increment(key)

        threads = [threading.Thread(target=bump) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert SQLiteMetricsStore(migrated_db).get(key) == workers * per_worker

    def test_delete_bucket(self, metrics: SQLiteMetricsStore) -> None:
        metrics.increment(MetricKey.daily("P1", VIEWS, DAY))
        metrics.increment(MetricKey.lifetime("P1", VIEWS))

        assert metrics.delete_bucket("P1", VIEWS, DAY) is True
        assert metrics.delete_bucket("P1", VIEWS, DAY) is False
        assert metrics.get(MetricKey.lifetime("P1", VIEWS)) == 1

    def test_list_entities_paged(self, metrics: SQLiteMetricsStore) -> None:
        for eid in ("C", "A", "B"):
            metrics.increment(MetricKey.lifetime(eid, VIEWS))

        assert metrics.list_entities(offset=0, limit=2) == ["A", "B"]
        assert metrics.list_entities(offset=2, limit=2) == ["C"]

    def test_list_daily_keys_before(self, metrics: SQLiteMetricsStore) -> None:
        for age in (40, 31, 1):
            metrics.increment(MetricKey.daily("P1", VIEWS, DAY - timedelta(days=age)))
        metrics.increment(MetricKey.lifetime("P1", VIEWS))

        keys = metrics.list_daily_keys("P1", before=DAY - timedelta(days=30))

        assert [k.bucket for k in keys] == [DAY - timedelta(days=40), DAY - timedelta(days=31)]
        assert all(not k.is_lifetime for k in keys)

    def test_get_daily_range(self, metrics: SQLiteMetricsStore) -> None:
        for age in (0, 1, 5):
            key = MetricKey.daily("P1", REVENUE, DAY - timedelta(days=age))
            metrics.increment(key, Decimal("2.5"))

        values = metrics.get_daily("P1", REVENUE, DAY - timedelta(days=2), DAY)

        assert values == {
            DAY: Decimal("2.5"),
            DAY - timedelta(days=1): Decimal("2.5"),
        }

    def test_missing_tables_raise_storage_error(self, db_path: str) -> None:
        store = SQLiteMetricsStore(db_path)
        with pytest.raises(StorageUnavailableError):
            store.increment(MetricKey.lifetime("P1", VIEWS))

    def test_external_connection(self, migrated_db: str) -> None:
        conn = sqlite3.connect(migrated_db, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            store = SQLiteMetricsStore(migrated_db, connection=conn)
            store.increment(MetricKey.lifetime("P1", VIEWS))
            assert store.get(MetricKey.lifetime("P1", VIEWS)) == 1
        finally:
            conn.close()


class TestSQLiteEphemeralStore:
    """TTL records."""

    def test_put_and_get(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put("insights:dedupe:view:v:P1", {"seen": True}, 1800, NOW)
        assert ephemeral.get("insights:dedupe:view:v:P1", NOW) == {"seen": True}

    def test_expired_reads_absent(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put("insights:dedupe:view:v:P1", 1, 1800, NOW)
        assert ephemeral.get("insights:dedupe:view:v:P1", NOW + timedelta(seconds=1800)) is None

    def test_orphan_reads_absent(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put_orphan("insights:cart:v", {"items": []})
        assert ephemeral.get("insights:cart:v", NOW) is None

    def test_put_replaces(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put("insights:cart:v", {"total": "1"}, 60, NOW)
        ephemeral.put("insights:cart:v", {"total": "2"}, 60, NOW)
        assert ephemeral.get("insights:cart:v", NOW) == {"total": "2"}

    def test_purge_expired(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put("insights:a", 1, 10, NOW - timedelta(minutes=5))
        ephemeral.put("insights:b", 1, 3600, NOW)
        ephemeral.put("other:c", 1, 10, NOW - timedelta(minutes=5))

        assert ephemeral.purge_expired(NOW) == 1
        assert ephemeral.get("insights:b", NOW) == 1

    def test_purge_orphans(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put_orphan("insights:a", 1)
        ephemeral.put("insights:b", 1, 3600, NOW)
        assert ephemeral.purge_orphans() == 1

    def test_purge_limit(self, ephemeral: SQLiteEphemeralStore) -> None:
        for i in range(5):
            ephemeral.put_orphan(f"insights:o{i}", i)
        assert ephemeral.purge_orphans(limit=3) == 3
        assert ephemeral.purge_orphans(limit=3) == 2

    def test_prefix_wildcards_are_literal(self, ephemeral: SQLiteEphemeralStore) -> None:
        """``_`` and ``%`` in a prefix match only themselves."""
        ephemeral.put("insights:x_y", 1, 60, NOW)
        ephemeral.put("insights:xzy", 1, 60, NOW)
        assert ephemeral.clear_prefix("insights:x_") == 1
        assert ephemeral.get("insights:xzy", NOW) == 1

    def test_clear_namespace(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put("insights:a", 1, 60, NOW)
        ephemeral.put_orphan("insights:b", 1)
        ephemeral.put("other:c", 1, 60, NOW)

        assert ephemeral.clear_prefix() == 2
        assert ephemeral.get("other:c", NOW) == 1

    def test_delete(self, ephemeral: SQLiteEphemeralStore) -> None:
        ephemeral.put("insights:a", 1, 60, NOW)
        assert ephemeral.delete("insights:a") is True
        assert ephemeral.delete("insights:a") is False


class TestSQLiteSettingsStore:
    """Tracker state persistence."""

    def test_empty_state(self, migrated_db: str) -> None:
        assert SQLiteSettingsStore(migrated_db).load_state() == TrackerState()

    def test_missing_table_reads_empty(self, db_path: str) -> None:
        assert SQLiteSettingsStore(db_path).load_state() == TrackerState()

    def test_round_trip(self, migrated_db: str) -> None:
        store = SQLiteSettingsStore(migrated_db)
        store.save_state(TrackerState("1.0.1", NOW))
        store.save_state(TrackerState("1.0.2", NOW + timedelta(days=1)))

        assert store.load_state() == TrackerState("1.0.2", NOW + timedelta(days=1))
