"""
Tracker composition and lifecycle.

Wires the stores, the dispatcher, the query service and the retention
scheduler for one database, and owns activation/deactivation.

Key behaviors:
- ``activate`` brings the schema current, checks the commerce
  dependency, clears cached records and starts the cleanup scheduler
- ``deactivate`` stops the scheduler and drops ephemeral records
- ``maybe_check_tables`` consults stored schema state at most once per
  check interval
"""

from __future__ import annotations

import logging
from datetime import datetime

from src.adapters.clock import SystemClock
from src.adapters.retention_scheduler import RetentionScheduler
from src.adapters.sqlite.metrics_store import (
    SQLiteEphemeralStore,
    SQLiteMetricsStore,
    SQLiteSettingsStore,
)
from src.adapters.sqlite.migrator import (
    DEFAULT_MIGRATIONS_DIR,
    TABLE_CHECK_INTERVAL,
    SchemaChecker,
    SQLiteMigrator,
    TrackerState,
)
from src.app_shell.config import (
    build_bot_config,
    build_identity_config,
    build_retention_config,
    build_tracking_config,
)
from src.components.metrics import MetricsQueryService
from src.components.retention import RetentionService
from src.components.tracking import (
    CommercePort,
    NotifierPort,
    TimePort,
    TrackingDispatcher,
    TrackingRuntime,
)
from src.core.services.ephemeral import NAMESPACE
from src.core.services.notifications import NotificationBus
from src.core.services.tracking_filter import BotFilter
from src.core.services.tracking_identity import VisitorResolver
from src.rules.models import Rules

logger = logging.getLogger(__name__)


class InsightsTracker:
    """One tracker instance per storefront database."""

    def __init__(
        self,
        rules: Rules,
        db_path: str,
        commerce: CommercePort | None = None,
        notifier: NotifierPort | None = None,
        time_port: TimePort | None = None,
        migrations_dir: str = DEFAULT_MIGRATIONS_DIR,
    ) -> None:
        self.rules = rules
        self.db_path = db_path
        self._commerce = commerce
        self._time = time_port or SystemClock()

        self.metrics = SQLiteMetricsStore(db_path)
        self.ephemeral = SQLiteEphemeralStore(db_path)
        self.settings = SQLiteSettingsStore(db_path)
        self.migrator = SQLiteMigrator(db_path, migrations_dir)
        self.schema = SchemaChecker(self.migrator, self.settings)

        self.notifier = notifier or NotificationBus()
        self.runtime = TrackingRuntime()
        bot_config = build_bot_config(rules)
        self.dispatcher = TrackingDispatcher(
            store=self.metrics,
            ephemeral=self.ephemeral,
            notifier=self.notifier,
            time_port=self._time,
            config=build_tracking_config(rules),
            runtime=self.runtime,
            bot_filter=BotFilter(bot_config),
            resolver=VisitorResolver(build_identity_config(rules), bot_config),
        )
        self.query = MetricsQueryService(
            store=self.metrics,
            cache=self.ephemeral,
            time_port=self._time,
            cache_ttl_seconds=rules.cache.range_ttl_seconds,
            max_range_days=rules.cache.max_range_days,
        )
        self.retention = RetentionService(
            store=self.metrics,
            ephemeral=self.ephemeral,
            config=build_retention_config(rules),
            time_port=self._time,
            timezone=rules.store.timezone,
        )
        self.scheduler = RetentionScheduler(
            self.retention,
            interval_seconds=rules.retention.interval_hours * 60 * 60,
        )
        self._last_table_check: datetime | None = None

    # --- Lifecycle ---

    def activate(self) -> TrackerState:
        """Bring the tracker online."""
        now = self._time.now_utc()
        state = self.schema.force_check(now)
        self._last_table_check = now
        logger.info("Schema at version %s", state.db_schema_version)

        if self.rules.tracking.require_commerce:
            self.runtime.check_dependencies(self._commerce)

        self.clear_all_cache()

        if self.rules.retention.enabled:
            self.scheduler.start()
        return state

    def deactivate(self) -> None:
        """Stop background work and drop ephemeral records."""
        self.scheduler.stop()
        cleared = self.clear_all_cache()
        logger.info("Tracker deactivated (%d cached records cleared)", cleared)

    def clear_all_cache(self) -> int:
        """Remove every ephemeral record in the tracker namespace."""
        cleared = self.ephemeral.clear_prefix(NAMESPACE)
        logger.debug("Cleared %d ephemeral records", cleared)
        return cleared

    def maybe_check_tables(self) -> bool:
        """Periodic schema check. Returns True when a check ran."""
        now = self._time.now_utc()
        if self._last_table_check and now - self._last_table_check < TABLE_CHECK_INTERVAL:
            return False
        self._last_table_check = now
        try:
            return self.schema.maybe_check(now)
        except Exception:
            logger.exception("Table check failed")
            return False

    @property
    def notices(self) -> tuple[str, ...]:
        return self.runtime.notices


def create_tracker(
    rules: Rules,
    db_path: str,
    commerce: CommercePort | None = None,
    notifier: NotifierPort | None = None,
    time_port: TimePort | None = None,
    migrations_dir: str = DEFAULT_MIGRATIONS_DIR,
) -> InsightsTracker:
    """Create an InsightsTracker."""
    return InsightsTracker(
        rules=rules,
        db_path=db_path,
        commerce=commerce,
        notifier=notifier,
        time_port=time_port,
        migrations_dir=migrations_dir,
    )
