"""
Metrics store implementation and read-side query service.

Key behaviors:
- Increments are atomic per key (read-modify-write under a lock)
- Counters are created lazily
- Deltas must be non-negative; revenue accumulates as Decimal
- Daily buckets can be deleted, lifetime counters cannot
- Range reads may be cached in the ephemeral store
"""

from __future__ import annotations

import hashlib
import threading
from datetime import date, timedelta

from src.core.services.ephemeral import CACHE_PREFIX, EphemeralStorePort

from .models import (
    DEFAULT_MAX_RANGE_DAYS,
    LIFETIME,
    MetricKey,
    MetricValue,
    coerce_value,
    range_days,
    zero_for,
)
from .ports import MetricsStorePort, TimePort


def validate_delta(key: MetricKey, delta: MetricValue) -> MetricValue:
    """Coerce delta to the metric's type and reject negatives."""
    value = coerce_value(key.metric_name, delta)
    if value < 0:
        raise ValueError(f"Counters only grow; got delta {delta} for {key.serialize()}")
    return value


# --- In-Memory Store ---


class InMemoryMetricsStore:
    """In-memory counter store for testing/dev."""

    def __init__(self) -> None:
        self._values: dict[MetricKey, MetricValue] = {}
        self._lock = threading.Lock()

    def increment(self, key: MetricKey, delta: MetricValue = 1) -> MetricValue:
        amount = validate_delta(key, delta)
        with self._lock:
            current = self._values.get(key, zero_for(key.metric_name))
            updated = current + amount
            self._values[key] = updated
        return updated

    def get(self, key: MetricKey) -> MetricValue:
        return self._values.get(key, zero_for(key.metric_name))

    def delete_bucket(self, entity_id: str, metric_name: str, day: date) -> bool:
        if not isinstance(day, date):
            raise ValueError("Only daily buckets can be deleted")
        key = MetricKey.daily(entity_id, metric_name, day)
        with self._lock:
            return self._values.pop(key, None) is not None

    def list_entities(self, offset: int = 0, limit: int = 100) -> list[str]:
        entities = sorted({k.entity_id for k in self._values})
        return entities[offset : offset + limit]

    def list_daily_keys(
        self,
        entity_id: str,
        before: date | None = None,
        limit: int = 100,
    ) -> list[MetricKey]:
        keys = [
            k
            for k in self._values
            if k.entity_id == entity_id
            and k.bucket != LIFETIME
            and (before is None or k.bucket < before)  # type: ignore[operator]
        ]
        keys.sort(key=lambda k: (k.bucket_label, k.metric_name))
        return keys[:limit]

    def get_daily(
        self,
        entity_id: str,
        metric_name: str,
        start: date,
        end: date,
    ) -> dict[date, MetricValue]:
        return {
            k.bucket: v  # type: ignore[misc]
            for k, v in self._values.items()
            if k.entity_id == entity_id
            and k.metric_name == metric_name
            and k.bucket != LIFETIME
            and start <= k.bucket <= end  # type: ignore[operator]
        }

    def all_keys(self) -> list[MetricKey]:
        """Every stored key (for testing)."""
        return sorted(self._values, key=lambda k: k.serialize())


# --- Query Service ---


class MetricsQueryService:
    """Read path over the counter store for dashboards/exports."""

    def __init__(
        self,
        store: MetricsStorePort,
        cache: EphemeralStorePort | None = None,
        time_port: TimePort | None = None,
        cache_ttl_seconds: int = 300,
        max_range_days: int = DEFAULT_MAX_RANGE_DAYS,
    ) -> None:
        self._store = store
        self._cache = cache
        self._time = time_port
        self._cache_ttl = cache_ttl_seconds
        self._max_range_days = max_range_days

    @property
    def max_range_days(self) -> int:
        """Widest span, in days, a range read may cover."""
        return self._max_range_days

    def get(self, key: MetricKey) -> MetricValue:
        return self._store.get(key)

    def get_range(
        self,
        entity_id: str,
        metric_name: str,
        start: date,
        end: date,
        use_cache: bool = True,
    ) -> tuple[MetricValue, list[tuple[date, MetricValue]], bool]:
        """
        Sum daily buckets in ``[start, end]``.

        Returns (total, per-day values with zero fill, served_from_cache).
        """
        if end < start:
            raise ValueError("end must not precede start")
        if range_days(start, end) > self._max_range_days:
            raise ValueError(f"Range exceeds {self._max_range_days} days")

        cache_key = self._cache_key(entity_id, metric_name, start, end)
        if use_cache and self._cache is not None and self._time is not None:
            cached = self._cache.get(cache_key, self._time.now_utc())
            if cached is not None:
                by_day = [
                    (date.fromisoformat(d), coerce_value(metric_name, v))
                    for d, v in cached["by_day"]
                ]
                return coerce_value(metric_name, cached["total"]), by_day, True

        daily = self._store.get_daily(entity_id, metric_name, start, end)
        by_day = []
        total = zero_for(metric_name)
        for offset in range(range_days(start, end)):
            day = start + timedelta(days=offset)
            value = daily.get(day, zero_for(metric_name))
            by_day.append((day, value))
            total += value

        if use_cache and self._cache is not None and self._time is not None:
            self._cache.put(
                cache_key,
                {"total": str(total), "by_day": [[d.isoformat(), str(v)] for d, v in by_day]},
                self._cache_ttl,
                self._time.now_utc(),
            )

        return total, by_day, False

    @staticmethod
    def _cache_key(entity_id: str, metric_name: str, start: date, end: date) -> str:
        raw = f"{entity_id}|{metric_name}|{start.isoformat()}|{end.isoformat()}"
        return CACHE_PREFIX + "range:" + hashlib.sha256(raw.encode()).hexdigest()[:32]


def create_in_memory_metrics_store() -> InMemoryMetricsStore:
    """Create an InMemoryMetricsStore."""
    return InMemoryMetricsStore()
