"""
Metrics component models.

Counters are keyed by ``(entity_id, metric_name, bucket)`` where the
bucket is a calendar date or the lifetime marker.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Literal

# --- Constants ---


LIFETIME: Literal["lifetime"] = "lifetime"

VIEWS = "views"
CHECKOUTS = "checkouts"
ADD_TO_CART = "add_to_cart"
DONATIONS = "donations"
REVENUE = "revenue"
SOURCE_PREFIX = "source:"

BASE_METRICS = frozenset({VIEWS, CHECKOUTS, ADD_TO_CART, DONATIONS, REVENUE})
DECIMAL_METRICS = frozenset({REVENUE})

DEFAULT_MAX_RANGE_DAYS = 366

Bucket = date | Literal["lifetime"]
MetricValue = int | Decimal


# --- Errors ---


class StorageUnavailableError(Exception):
    """Counter storage could not be read or written."""


@dataclass(frozen=True)
class MetricsValidationError:
    """Metrics validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Helpers ---


def is_valid_metric_name(name: str) -> bool:
    """Known base metric or ``source:<tag>``."""
    if name in BASE_METRICS:
        return True
    return name.startswith(SOURCE_PREFIX) and len(name) > len(SOURCE_PREFIX)


def range_days(start: date, end: date) -> int:
    """Number of days in the inclusive range ``[start, end]``."""
    return (end - start).days + 1


def is_valid_entity_id(entity_id: object) -> bool:
    """Non-empty and free of the key separator."""
    text = str(entity_id) if entity_id is not None else ""
    return bool(text) and "|" not in text


def zero_for(metric_name: str) -> MetricValue:
    """Identity value for a metric."""
    return Decimal("0") if metric_name in DECIMAL_METRICS else 0


def coerce_value(metric_name: str, value: MetricValue | str | float) -> MetricValue:
    """Coerce a stored or supplied value to the metric's numeric type."""
    if metric_name in DECIMAL_METRICS:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    return int(value)


# --- Key ---


@dataclass(frozen=True)
class MetricKey:
    """Structured counter key with a canonical string form."""

    entity_id: str
    metric_name: str
    bucket: Bucket = LIFETIME

    def __post_init__(self) -> None:
        if not self.entity_id:
            raise ValueError("entity_id is required")
        if "|" in self.entity_id or "|" in self.metric_name:
            raise ValueError("'|' is reserved in metric keys")
        if not is_valid_metric_name(self.metric_name):
            raise ValueError(f"Unknown metric: {self.metric_name}")
        if self.bucket != LIFETIME and not isinstance(self.bucket, date):
            raise ValueError(f"Invalid bucket: {self.bucket!r}")

    @property
    def is_lifetime(self) -> bool:
        return self.bucket == LIFETIME

    @property
    def bucket_label(self) -> str:
        if isinstance(self.bucket, date):
            return self.bucket.isoformat()
        return LIFETIME

    def serialize(self) -> str:
        """Canonical ``entity|metric|YYYY-MM-DD`` or ``entity|metric|lifetime``."""
        return f"{self.entity_id}|{self.metric_name}|{self.bucket_label}"

    @classmethod
    def parse(cls, raw: str) -> MetricKey:
        entity_id, metric_name, label = raw.split("|")
        return cls(entity_id, metric_name, parse_bucket(label))

    @classmethod
    def lifetime(cls, entity_id: str, metric_name: str) -> MetricKey:
        return cls(str(entity_id), metric_name, LIFETIME)

    @classmethod
    def daily(cls, entity_id: str, metric_name: str, day: date) -> MetricKey:
        return cls(str(entity_id), metric_name, day)


def parse_bucket(label: str) -> Bucket:
    """Inverse of ``MetricKey.bucket_label``."""
    if label == LIFETIME:
        return LIFETIME
    return date.fromisoformat(label)


# --- Input/Output Models ---


@dataclass(frozen=True)
class GetCounterInput:
    """Input for reading one counter."""

    entity_id: str
    metric_name: str
    bucket: Bucket = LIFETIME


@dataclass(frozen=True)
class GetRangeInput:
    """Input for reading daily buckets over an inclusive date range."""

    entity_id: str
    metric_name: str
    start: date
    end: date
    use_cache: bool = True


@dataclass(frozen=True)
class CounterOutput:
    """Output for a counter read."""

    key: MetricKey | None
    value: MetricValue
    errors: list[MetricsValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class RangeOutput:
    """Output for a range read."""

    total: MetricValue
    by_day: tuple[tuple[date, MetricValue], ...]
    cached: bool = False
    errors: list[MetricsValidationError] = field(default_factory=list)
    success: bool = True
