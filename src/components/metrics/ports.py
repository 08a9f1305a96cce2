"""
Metrics component port definitions.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol

from .models import MetricKey, MetricValue


class MetricsStorePort(Protocol):
    """Counter storage interface."""

    def increment(self, key: MetricKey, delta: MetricValue = 1) -> MetricValue:
        """
        Atomically add delta to the counter and return the new value.

        Counters are created lazily on first increment.
        """
        ...

    def get(self, key: MetricKey) -> MetricValue:
        """Current value, zero when the counter does not exist."""
        ...

    def delete_bucket(self, entity_id: str, metric_name: str, day: date) -> bool:
        """Delete one daily bucket. Never touches the lifetime key."""
        ...

    def list_entities(self, offset: int = 0, limit: int = 100) -> list[str]:
        """Page through entity ids that own counters, stable order."""
        ...

    def list_daily_keys(
        self,
        entity_id: str,
        before: date | None = None,
        limit: int = 100,
    ) -> list[MetricKey]:
        """Daily keys of an entity, oldest first, optionally dated before a day."""
        ...

    def get_daily(
        self,
        entity_id: str,
        metric_name: str,
        start: date,
        end: date,
    ) -> dict[date, MetricValue]:
        """Daily buckets within an inclusive date range."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
