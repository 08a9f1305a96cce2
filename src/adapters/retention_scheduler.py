"""
Retention Scheduler Adapter.

In-process timer that runs the retention cleanup once per interval on a
background thread.

Key behaviors:
- First run happens one interval after ``start``
- A trigger while a run is in flight is skipped by the service
- Exceptions from a run are logged and the loop keeps going
"""

from __future__ import annotations

import logging
import threading

from src.components.retention import CleanupResult, RetentionService

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


class RetentionScheduler:
    """
    Background cleanup scheduler.

    Runs a daemon thread that waits on a stop event between runs.
    """

    def __init__(
        self,
        service: RetentionService,
        interval_seconds: float = DAY_SECONDS,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            service: Retention service to drive
            interval_seconds: Interval between cleanup runs
        """
        self._service = service
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False
        self._last_result: CleanupResult | None = None

    def start(self) -> None:
        """Start the background scheduler."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="insights-retention", daemon=True
        )
        self._thread.start()
        self._running = True
        logger.info("Retention scheduler started (interval: %.0fs)", self._interval)

    def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._thread = None
        self._running = False
        logger.info("Retention scheduler stopped")

    def trigger_now(self) -> CleanupResult:
        """Run cleanup immediately on the caller's thread."""
        result = self._service.run_cleanup()
        self._last_result = result
        return result

    @property
    def is_running(self) -> bool:
        """Check if scheduler is active."""
        return self._running

    @property
    def last_result(self) -> CleanupResult | None:
        return self._last_result

    def _run_loop(self) -> None:
        """Background loop."""
        while not self._stop_event.wait(timeout=self._interval):
            try:
                result = self.trigger_now()
                if result.failures:
                    logger.warning("Cleanup finished with %d failed pages", len(result.failures))
            except Exception:
                logger.exception("Error in retention scheduler loop")


def create_retention_scheduler(
    service: RetentionService,
    interval_seconds: float = DAY_SECONDS,
) -> RetentionScheduler:
    """Create a RetentionScheduler."""
    return RetentionScheduler(service, interval_seconds)
