"""
Tracker composition over a real SQLite database.

Covers activation, the periodic table check and a full event flow
through to retention.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import replace
from decimal import Decimal

import pytest

from src.adapters.commerce_stub import CommerceStubAdapter
from src.adapters.sqlite.migrator import SCHEMA_VERSION
from src.app_shell.tracker import InsightsTracker, create_tracker
from src.components.metrics import REVENUE, VIEWS, MetricKey
from src.components.tracking import OrderCompleted, OrderLine, ProductViewed, SkipReason
from src.core.services.ephemeral import CACHE_PREFIX
from src.core.services.notifications import ORDER_TRACKED, RecordingBus
from src.rules.loader import parse_rules

HEADER = "project:\n  slug: t\n  rules_version: '1'\n"


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def tracker(minimal_rules, db_path, time_port, bus) -> Iterator[InsightsTracker]:
    t = create_tracker(
        minimal_rules,
        db_path,
        commerce=CommerceStubAdapter(),
        notifier=bus,
        time_port=time_port,
    )
    yield t
    t.deactivate()


class TestActivation:
    """activate / deactivate."""

    def test_activate_migrates_and_records_state(
        self, tracker: InsightsTracker, time_port
    ) -> None:
        state = tracker.activate()

        assert state.db_schema_version == SCHEMA_VERSION
        assert tracker.settings.load_state().last_table_check_timestamp == time_port.now_utc()
        assert tracker.scheduler.is_running is True

    def test_activate_clears_cached_records(
        self, tracker: InsightsTracker, time_port
    ) -> None:
        tracker.activate()
        tracker.ephemeral.put(CACHE_PREFIX + "stale", 1, 300, time_port.now_utc())

        tracker.activate()

        assert tracker.ephemeral.get(CACHE_PREFIX + "stale", time_port.now_utc()) is None

    def test_deactivate_stops_scheduler(self, tracker: InsightsTracker) -> None:
        tracker.activate()
        tracker.deactivate()
        assert tracker.scheduler.is_running is False

    def test_retention_disabled(self, db_path, time_port) -> None:
        rules = parse_rules(HEADER + "retention:\n  enabled: false\n")
        tracker = create_tracker(
            rules, db_path, commerce=CommerceStubAdapter(), time_port=time_port
        )
        tracker.activate()
        try:
            assert tracker.scheduler.is_running is False
        finally:
            tracker.deactivate()

    def test_commerce_missing_disables(
        self, minimal_rules, db_path, time_port, browser_ctx
    ) -> None:
        tracker = create_tracker(
            minimal_rules, db_path, commerce=CommerceStubAdapter(False), time_port=time_port
        )
        tracker.activate()
        try:
            out = tracker.dispatcher.track_product_viewed(ProductViewed("P1"), browser_ctx)
            assert out.skip_reason == SkipReason.DISABLED
            assert len(tracker.notices) == 1
        finally:
            tracker.deactivate()

    def test_commerce_not_required(self, db_path, time_port) -> None:
        rules = parse_rules(HEADER + "tracking:\n  require_commerce: false\n")
        tracker = create_tracker(rules, db_path, commerce=None, time_port=time_port)
        tracker.activate()
        try:
            assert tracker.runtime.enabled is True
        finally:
            tracker.deactivate()


class TestTableCheck:
    """Periodic schema check."""

    def test_skipped_within_interval(self, tracker: InsightsTracker, time_port) -> None:
        tracker.activate()
        time_port.advance(hours=1)
        assert tracker.maybe_check_tables() is False

    def test_runs_after_interval(self, tracker: InsightsTracker, time_port) -> None:
        tracker.activate()
        time_port.advance(hours=25)

        assert tracker.maybe_check_tables() is True
        assert tracker.settings.load_state().last_table_check_timestamp == time_port.now_utc()


class TestEventFlow:
    """Events through to SQLite and back out through retention."""

    def test_view_order_and_cleanup(
        self, tracker: InsightsTracker, time_port, browser_ctx, bus
    ) -> None:
        tracker.activate()
        dispatcher = tracker.dispatcher

        view = dispatcher.track_product_viewed(ProductViewed("P1"), browser_ctx)
        assert view.cookie is not None
        returning = replace(browser_ctx, cookies={view.cookie.name: view.cookie.value})
        assert dispatcher.track_product_viewed(ProductViewed("P1"), returning).accepted is False

        dispatcher.track_order_completed(
            OrderCompleted("9001", (OrderLine("P1", 1, Decimal("12.34")),))
        )

        day = dispatcher.today()
        assert tracker.metrics.get(MetricKey.lifetime("P1", VIEWS)) == 1
        assert tracker.metrics.get(MetricKey.daily("P1", REVENUE, day)) == Decimal("12.34")
        assert ORDER_TRACKED in bus.names()

        time_port.advance(days=31)
        result = tracker.scheduler.trigger_now()

        assert result.deleted_buckets >= 2
        assert tracker.metrics.get(MetricKey.daily("P1", VIEWS, day)) == 0
        assert tracker.metrics.get(MetricKey.lifetime("P1", REVENUE)) == Decimal("12.34")
        assert result.purged_expired >= 1
