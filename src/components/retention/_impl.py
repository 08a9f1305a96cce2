"""
Retention cleanup implementation.

Key behaviors:
- Daily buckets dated before ``today - retention_days`` are deleted
- Lifetime counters are never touched
- Entities are scanned in fixed-size pages; a failing page is logged
  and the scan moves on
- A per-run deletion cap stops the run early; the next run picks up
  the remainder using the same cutoff rule
- Expired and orphaned ephemeral records are purged
- Overlapping runs are skipped (Idle -> Running -> Idle)
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from src.core.services.ephemeral import NAMESPACE

from .models import CleanupResult, CleanupState, PageFailure, RetentionConfig
from .ports import EphemeralStorePort, MetricsStorePort, TimePort

logger = logging.getLogger(__name__)


def compute_cutoff(today: date, retention_days: int) -> date:
    """First date that is kept."""
    return today - timedelta(days=retention_days)


class RetentionService:
    """Bounded best-effort cleanup of daily buckets and ephemeral records."""

    def __init__(
        self,
        store: MetricsStorePort,
        ephemeral: EphemeralStorePort | None = None,
        config: RetentionConfig | None = None,
        time_port: TimePort | None = None,
        timezone: str = "UTC",
    ) -> None:
        self._store = store
        self._ephemeral = ephemeral
        self._config = config or RetentionConfig()
        self._time = time_port
        self._tz = ZoneInfo(timezone)
        self._lock = threading.Lock()
        self._state = CleanupState.IDLE

    @property
    def state(self) -> CleanupState:
        return self._state

    @property
    def config(self) -> RetentionConfig:
        return self._config

    def _now(self) -> datetime:
        return self._time.now_utc() if self._time else datetime.now(UTC)

    def run_cleanup(self, now: datetime | None = None) -> CleanupResult:
        """
        Execute one cleanup run.

        Returns a skipped result when another run is in flight.
        """
        now = now or self._now()
        cutoff = compute_cutoff(now.astimezone(self._tz).date(), self._config.retention_days)

        if not self._lock.acquire(blocking=False):
            logger.info("Cleanup already running, skipping")
            return CleanupResult(started_at=now, cutoff=cutoff, skipped=True)

        self._state = CleanupState.RUNNING
        try:
            return self._run(now, cutoff)
        finally:
            self._state = CleanupState.IDLE
            self._lock.release()

    def _run(self, now: datetime, cutoff: date) -> CleanupResult:
        cfg = self._config
        failures: list[PageFailure] = []
        deleted = 0
        pages = 0
        cap_reached = False
        offset = 0

        while not cap_reached:
            try:
                entities = self._store.list_entities(offset=offset, limit=cfg.page_size)
            except Exception as e:
                logger.exception("Cleanup: listing entities at offset %d failed", offset)
                failures.append(PageFailure(offset=offset, message=str(e)))
                break

            if not entities:
                break
            pages += 1

            try:
                page_deleted, cap_reached = self._clean_page(
                    entities, cutoff, cfg.max_deletions - deleted
                )
                deleted += page_deleted
            except Exception as e:
                logger.exception("Cleanup: page at offset %d failed", offset)
                failures.append(PageFailure(offset=offset, message=str(e)))

            if len(entities) < cfg.page_size:
                break
            offset += cfg.page_size

        if cap_reached:
            logger.info("Cleanup: deletion cap of %d reached, stopping early", cfg.max_deletions)

        purged_expired, purged_orphans = self._purge_ephemeral(now, failures)

        result = CleanupResult(
            started_at=now,
            cutoff=cutoff,
            deleted_buckets=deleted,
            purged_expired=purged_expired,
            purged_orphans=purged_orphans,
            pages_scanned=pages,
            cap_reached=cap_reached,
            failures=failures,
        )
        logger.info(
            "Cleanup finished: %d buckets deleted before %s, %d expired and %d orphans purged",
            deleted,
            cutoff.isoformat(),
            purged_expired,
            purged_orphans,
        )
        return result

    def _clean_page(self, entities: list[str], cutoff: date, budget: int) -> tuple[int, bool]:
        """Delete stale buckets for one page of entities. Returns (deleted, cap_reached)."""
        deleted = 0
        for entity_id in entities:
            keys = self._store.list_daily_keys(
                entity_id,
                before=cutoff,
                limit=self._config.keys_per_entity,
            )
            for key in keys:
                if deleted >= budget:
                    return deleted, True
                # Store listings are advisory; the age rule is enforced here
                if key.is_lifetime or not isinstance(key.bucket, date) or key.bucket >= cutoff:
                    continue
                if self._store.delete_bucket(entity_id, key.metric_name, key.bucket):
                    deleted += 1
        return deleted, deleted >= budget

    def _purge_ephemeral(self, now: datetime, failures: list[PageFailure]) -> tuple[int, int]:
        if self._ephemeral is None or not self._config.purge_ephemeral:
            return 0, 0

        expired = orphans = 0
        try:
            expired = self._ephemeral.purge_expired(now, NAMESPACE, self._config.max_deletions)
            orphans = self._ephemeral.purge_orphans(NAMESPACE, self._config.max_deletions)
        except Exception as e:
            logger.exception("Cleanup: ephemeral purge failed")
            failures.append(PageFailure(offset=-1, message=str(e)))
        return expired, orphans


def create_retention_service(
    store: MetricsStorePort,
    ephemeral: EphemeralStorePort | None = None,
    config: RetentionConfig | None = None,
    time_port: TimePort | None = None,
    timezone: str = "UTC",
) -> RetentionService:
    """Create a RetentionService."""
    return RetentionService(
        store=store,
        ephemeral=ephemeral,
        config=config,
        time_port=time_port,
        timezone=timezone,
    )
